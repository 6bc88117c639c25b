from typing import Optional


def normalize_url(url: Optional[str]) -> str:
    """
    Normalize a link URL into its collection key:
    - Strip surrounding whitespace
    - Lower-case the whole string
    - Drop a single trailing slash

    Blank input normalizes to "".
    """
    if not url:
        return ""
    norm = url.strip().lower()
    if norm.endswith("/") and not norm.endswith("//"):
        norm = norm[:-1]
    return norm


def is_blank(value: Optional[str]) -> bool:
    return not value or not value.strip()


def coerce_id(raw):
    """Numeric-looking identifiers become ints, anything else stays as given."""
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    return raw
