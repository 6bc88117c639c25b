"""
Decides which link list gets written back to a column.

The CMS replaces the whole `links` field on every update, so whatever we
send is the new truth. Two entry points:

- merge_append: existing links followed by a validated batch of new ones.
- merge_replacement: a full edit form; guards against a form that lost
  most of the existing links before it was submitted.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

from .errors import ConflictError, ValidationError
from .log import get_logger
from .models import LinkRecord
from .urls import is_blank, normalize_url

logger = get_logger(__name__)

LinkPayload = Dict[str, Any]


@dataclass(frozen=True)
class ReplacementPolicy:
    # preserve existing links when the form keeps fewer than ratio * existing ...
    ratio: float = 0.5
    # ... and the column has more than this many links
    min_existing: int = 3


DEFAULT_POLICY = ReplacementPolicy()


def validate_batch(incoming: Sequence[LinkRecord]):
    if not incoming:
        raise ValidationError("missing required field")
    if any(is_blank(link.label) or is_blank(link.url) for link in incoming):
        raise ValidationError("missing required field")

    seen = set()
    for link in incoming:
        norm = normalize_url(link.url)
        if norm in seen:
            raise ValidationError("duplicate url in batch")
        seen.add(norm)


def find_conflicts(existing: Sequence[LinkRecord], incoming: Sequence[LinkRecord]) -> List[int]:
    """Indexes into `incoming` whose url is already in `existing`."""
    existing_urls = {normalize_url(l.url) for l in existing if not is_blank(l.url)}
    return [
        i for i, link in enumerate(incoming)
        if not is_blank(link.url) and normalize_url(link.url) in existing_urls
    ]


def merge_append(
    existing: Sequence[LinkRecord], incoming: Sequence[LinkRecord]
) -> List[LinkPayload]:
    validate_batch(incoming)
    conflicts = find_conflicts(existing, incoming)
    if conflicts:
        raise ConflictError("url already present", count=len(conflicts))
    return [l.canonical() for l in existing] + [l.canonical() for l in incoming]


def merge_replacement(
    existing: Sequence[LinkRecord],
    incoming: Sequence[LinkRecord],
    policy: ReplacementPolicy = DEFAULT_POLICY,
) -> List[LinkPayload]:
    form_count = sum(1 for l in incoming if not is_blank(l.url))
    existing_count = sum(1 for l in existing if not is_blank(l.url))

    if form_count == 0 and existing_count > 0:
        logger.warning(
            "Link form is empty but the column has links; keeping existing links",
            existing_count=existing_count,
        )
        return [l.canonical() for l in existing]

    if form_count < existing_count * policy.ratio and existing_count > policy.min_existing:
        logger.warning(
            "Link form has far fewer links than the column; preserving existing links",
            form_count=form_count,
            existing_count=existing_count,
        )
        form_urls = {normalize_url(l.url) for l in incoming if not is_blank(l.url)}
        preserved = [
            l for l in existing
            if is_blank(l.url) or normalize_url(l.url) not in form_urls
        ]
        unique: Dict[str, LinkRecord] = {}
        for link in list(preserved) + list(incoming):
            if is_blank(link.url):
                continue
            norm = normalize_url(link.url)
            if norm not in unique or norm in form_urls:
                unique[norm] = link
        return [l.canonical() for l in unique.values()]

    return [l.canonical() for l in incoming]
