from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from .log import get_logger
from .models import ScheduledItem
from .strapi import COLLECTIONS, StrapiClient, extract_links, run_blocking, unwrap_list

logger = get_logger(__name__)

NO_AUTHOR = "No author"


def parse_instant(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def author_name(author: Any) -> str:
    """
    Author display name from any relation shape:
    {"data": {"attributes": {"name"}}}, {"data": {"name"}},
    {"attributes": {"name"}}, {"name"} or a bare id.
    """
    if not author:
        return NO_AUTHOR
    if isinstance(author, int):
        return f"Author #{author}"
    if not isinstance(author, dict):
        return NO_AUTHOR

    data = author.get("data")
    if isinstance(data, dict):
        attrs = data.get("attributes")
        if isinstance(attrs, dict) and isinstance(attrs.get("name"), str):
            return attrs["name"]
        if isinstance(data.get("name"), str):
            return data["name"]
    attrs = author.get("attributes")
    if isinstance(attrs, dict) and isinstance(attrs.get("name"), str):
        return attrs["name"]
    if isinstance(author.get("name"), str):
        return author["name"]
    return NO_AUTHOR


def build_schedule(
    articles: Iterable[Dict[str, Any]],
    columns: Iterable[Dict[str, Any]],
    year: Optional[int] = None,
    month: Optional[int] = None,
) -> List[ScheduledItem]:
    """Flat entities in, date-sorted schedule out, optionally limited to one month."""
    entries = []

    for article in articles:
        try:
            when = parse_instant(article.get("publishDate"))
        except ValueError:
            logger.warning("Unparseable article publishDate", article_id=str(article.get("id")))
            continue
        if when is None:
            continue
        entries.append((when, ScheduledItem(
            id=f"article-{article.get('id')}",
            type="article",
            title=article.get("title") or "Untitled",
            author_name=author_name(article.get("author")),
            publish_date=when.isoformat(),
            entity_id=article.get("id"),
        )))

    for column in columns:
        name = author_name(column.get("author"))
        for index, link in enumerate(extract_links(column)):
            try:
                when = parse_instant(link.publish_date)
            except ValueError:
                logger.warning("Unparseable link publishDate", column_id=str(column.get("id")), index=index)
                continue
            if when is None:
                continue
            entries.append((when, ScheduledItem(
                id=f"column-{column.get('id')}-link-{index}",
                type="column-link",
                title=link.label or "Untitled link",
                author_name=name,
                description=link.description,
                publish_date=when.isoformat(),
                entity_id=column.get("id"),
                link_index=index,
            )))

    if year is not None and month is not None:
        entries = [(w, item) for w, item in entries if w.year == year and w.month == month]

    entries.sort(key=lambda pair: _sort_key(pair[0]))
    return [item for _, item in entries]


def _sort_key(when: datetime) -> float:
    # naive instants are taken as UTC
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return when.timestamp()


def group_by_day(items: Iterable[ScheduledItem]) -> Dict[str, List[ScheduledItem]]:
    grouped: Dict[str, List[ScheduledItem]] = {}
    for item in items:
        grouped.setdefault(item.publish_date[:10], []).append(item)
    return grouped


async def load_schedule(
    client: StrapiClient, year: Optional[int] = None, month: Optional[int] = None
) -> List[ScheduledItem]:
    article_params = {
        "filters": {"publishDate": {"$notNull": True}},
        "populate": ["author"],
        "sort": ["publishDate:asc"],
        "pagination": {"limit": 1000},
    }
    column_params = {"populate": ["author", "links"], "pagination": {"limit": 1000}}

    articles = await run_blocking(client.find, COLLECTIONS["articles"], article_params)
    columns = await run_blocking(client.find, COLLECTIONS["columns"], column_params)
    return build_schedule(unwrap_list(articles), unwrap_list(columns), year, month)
