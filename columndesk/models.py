from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .urls import is_blank


class CmsModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _or_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


class LinkRecord(CmsModel):
    label: str = ""
    url: str = ""
    description: Optional[str] = None
    publish_date: Optional[str] = None

    def canonical(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "url": self.url,
            "description": _or_none(self.description),
            "publishDate": _or_none(self.publish_date),
        }

    @classmethod
    def from_cms(cls, raw: Any) -> "LinkRecord":
        """Read a link component in either flat or attributes-wrapped form."""
        if not isinstance(raw, dict):
            return cls()
        attrs = raw.get("attributes") or {}

        def pick(key):
            value = raw.get(key)
            return value if value is not None else attrs.get(key)

        return cls(
            label=pick("label") or "",
            url=pick("url") or "",
            description=pick("description"),
            publish_date=pick("publishDate"),
        )


class LinkPatch(CmsModel):
    label: Optional[str] = None
    url: Optional[str] = None
    description: Optional[str] = None
    publish_date: Optional[str] = None


class Seo(CmsModel):
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None
    keywords: Optional[str] = None
    meta_image: Optional[int] = None
    prevent_indexing: Optional[bool] = None

    def to_payload(self) -> Optional[Dict[str, Any]]:
        data = {
            k: v
            for k, v in self.model_dump(by_alias=True).items()
            if v is not None and not (isinstance(v, str) and not v.strip())
        }
        return data or None


class ColumnForm(CmsModel):
    title: str
    slug: str
    description: str = ""
    cover: Optional[int] = None
    author: Optional[int] = None
    links: List[LinkRecord] = Field(default_factory=list)


class ArticleForm(CmsModel):
    title: str
    slug: str
    excerpt: str = ""
    body: str = ""
    hero_image: Optional[int] = None
    publish_date: Optional[str] = None
    is_premium: bool = False
    reading_time: Optional[int] = None
    author: Optional[int] = None
    tags: List[int] = Field(default_factory=list)
    partners: List[int] = Field(default_factory=list)
    seo: Optional[Seo] = None

    def to_payload(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "title": self.title,
            "slug": self.slug,
            "excerpt": _or_none(self.excerpt),
            "body": self.body,
            "publishDate": _or_none(self.publish_date),
            "isPremium": self.is_premium,
            "readingTime": self.reading_time or None,
        }
        if self.hero_image:
            data["heroImage"] = self.hero_image
        if self.author:
            data["author"] = self.author
        if self.tags:
            data["tags"] = self.tags
        if self.partners:
            data["partners"] = self.partners
        seo = self.seo.to_payload() if self.seo else None
        if seo:
            data["seo"] = seo
        return data


class EventForm(CmsModel):
    title: str
    slug: str
    description: str = ""
    body: str = ""
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    location: str = ""
    address: str = ""
    is_online: bool = False
    online_url: str = ""
    organizer: str = ""
    external_url: str = ""
    is_featured: bool = False
    hero_image: Optional[int] = None
    tags: List[int] = Field(default_factory=list)
    seo: Optional[Seo] = None

    def to_payload(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "title": self.title,
            "slug": self.slug,
            "isOnline": self.is_online,
            "isFeatured": self.is_featured,
        }
        for key in (
            "description", "body", "start_date", "end_date", "location",
            "address", "online_url", "organizer", "external_url",
        ):
            data[to_camel(key)] = _or_none(getattr(self, key))
        if self.hero_image:
            data["heroImage"] = self.hero_image
        if self.tags:
            data["tags"] = self.tags
        seo = self.seo.to_payload() if self.seo else None
        if seo:
            data["seo"] = seo
        return data


class VideoEpisodeForm(CmsModel):
    title: str
    slug: str
    video_url: str
    synopsis: str = ""
    body: str = ""
    hero_image: Optional[int] = None
    video_orientation: Optional[str] = None  # horizontal | vertical
    duration_seconds: Optional[int] = None
    publish_date: Optional[str] = None
    is_premium: bool = False
    show: Optional[str] = None
    tags: List[int] = Field(default_factory=list)
    partners: List[int] = Field(default_factory=list)
    seo: Optional[Seo] = None

    def to_payload(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "title": self.title,
            "slug": self.slug,
            "videoUrl": self.video_url,
            "isPremium": self.is_premium is True,
        }
        if not is_blank(self.synopsis):
            data["synopsis"] = self.synopsis
        if not is_blank(self.body):
            data["body"] = self.body
        if self.publish_date:
            data["publishDate"] = self.publish_date
        if self.hero_image:
            data["heroImage"] = self.hero_image
        if self.video_orientation:
            data["videoOrientation"] = self.video_orientation
        if self.duration_seconds is not None:
            data["durationSeconds"] = self.duration_seconds
        if self.show:
            data["show"] = self.show
        if self.tags:
            data["tags"] = self.tags
        if self.partners:
            data["partners"] = self.partners
        seo = self.seo.to_payload() if self.seo else None
        if seo:
            data["seo"] = seo
        return data


class LoginIn(BaseModel):
    identifier: str
    password: str


class LinkBatchIn(BaseModel):
    links: List[LinkRecord]


class ScheduledItem(CmsModel):
    id: str
    type: str  # article | event | video-episode | column-link
    title: str
    author_name: str
    publish_date: str
    description: Optional[str] = None
    entity_id: Optional[Any] = None
    link_index: Optional[int] = None
