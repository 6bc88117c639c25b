from typing import Any, Dict, List, Union

from .errors import ConflictError, DeskError
from .log import get_logger
from .models import ArticleForm, ColumnForm, EventForm, LinkRecord, VideoEpisodeForm
from .protocol import ColumnLinkSync
from .reconcile import DEFAULT_POLICY, ReplacementPolicy, merge_replacement
from .strapi import COLLECTIONS, StrapiClient, extract_links, relation_id, run_blocking, unwrap_entity

logger = get_logger(__name__)

EntryForm = Union[ArticleForm, EventForm, VideoEpisodeForm]

# collection -> (form type, noun used in messages)
ENTRY_KINDS = {
    COLLECTIONS["articles"]: (ArticleForm, "article"),
    COLLECTIONS["events"]: (EventForm, "event"),
    COLLECTIONS["video_episodes"]: (VideoEpisodeForm, "video episode"),
}


class ContentService:
    """Create/update flows for columns, articles, events and video episodes."""

    def __init__(
        self,
        client: StrapiClient,
        columns: ColumnLinkSync,
        policy: ReplacementPolicy = DEFAULT_POLICY,
    ):
        self.client = client
        self.columns = columns
        self.policy = policy

    async def check_slug(self, collection: str, slug: str, noun: str):
        """
        Refuse a slug that another entry of the collection already uses.
        A failed lookup is logged and does not block the caller.
        """
        params = {"filters": {"slug": {"$eq": slug}}, "pagination": {"limit": 1}}
        try:
            payload = await run_blocking(self.client.find, collection, params)
        except DeskError as exc:
            logger.warning(f"Slug lookup failed, continuing: {exc}", collection=collection, slug=slug)
            return

        for entry in (payload.get("data") or [])[:1]:
            flat = unwrap_entity(entry) or {}
            if flat.get("slug") == slug:
                raise ConflictError(
                    f'A {noun} with slug "{slug}" already exists. '
                    f"Change the slug or edit the existing {noun} (ID: {flat.get('id')})."
                )

    # ----- columns -----

    async def create_column(self, form: ColumnForm) -> Dict[str, Any]:
        collection = COLLECTIONS["columns"]
        await self.check_slug(collection, form.slug, "column")

        data: Dict[str, Any] = {
            "title": form.title,
            "slug": form.slug,
            "description": form.description,
            "links": [link.canonical() for link in form.links],
        }
        if form.cover:
            data["cover"] = form.cover
        if form.author:
            data["author"] = form.author

        payload = await run_blocking(self.client.create, collection, data)
        logger.info("Column created", slug=form.slug)
        return unwrap_entity(payload) or {}

    async def update_column(self, caller_id: Any, form: ColumnForm) -> Dict[str, Any]:
        current = await self.columns.load(caller_id, refresh=True)
        existing: List[LinkRecord] = extract_links(current)
        final = merge_replacement(existing, form.links, self.policy)

        data: Dict[str, Any] = {
            "title": form.title,
            "slug": form.slug,
            "description": form.description,
            "links": final,
        }

        if form.cover:
            data["cover"] = form.cover
        elif not current.get("cover"):
            data["cover"] = None

        if form.author is not None:
            data["author"] = form.author
        else:
            data["author"] = relation_id(current.get("author"))

        return await self.columns.replace(caller_id, data)

    # ----- articles, events, video episodes -----

    async def create_entry(self, collection: str, form: EntryForm) -> Dict[str, Any]:
        _, noun = ENTRY_KINDS[collection]
        await self.check_slug(collection, form.slug, noun)
        payload = await run_blocking(self.client.create, collection, form.to_payload())
        logger.info(f"{noun.capitalize()} created", slug=form.slug)
        return unwrap_entity(payload) or {}

    async def update_entry(self, collection: str, id: Any, form: EntryForm) -> Dict[str, Any]:
        _, noun = ENTRY_KINDS[collection]
        payload = await run_blocking(self.client.update, collection, id, form.to_payload())
        logger.info(f"{noun.capitalize()} updated", id=str(id))
        return unwrap_entity(payload) or {}

    async def delete_entry(self, collection: str, id: Any):
        await run_blocking(self.client.delete, collection, id)
        logger.info("Entry deleted", collection=collection, id=str(id))
