from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from .cache import AliasCache, IdentityTable
from .content import ENTRY_KINDS, ContentService
from .errors import ConflictError, DeskError, TransportError
from .log import configure_logging, get_logger
from .models import ColumnForm, LinkBatchIn, LinkPatch, LinkRecord, LoginIn
from .protocol import ColumnLinkSync
from .reconcile import ReplacementPolicy
from .schedule import group_by_day, load_schedule
from .session import SessionRegistry
from .settings import get_settings
from .storage import TutorialStore
from .strapi import StrapiClient, extract_links, run_blocking

logger = get_logger(__name__)

settings = get_settings()

app = FastAPI(title="ColumnDesk")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

client = StrapiClient(
    settings.api_base_url,
    api_token=settings.strapi_api_token,
    timeout=settings.request_timeout,
)
columns = ColumnLinkSync(
    client,
    cache=AliasCache(),
    identities=IdentityTable(),
    resync_wait=settings.resync_wait,
    settle_delay=settings.settle_delay,
)
content = ContentService(
    client,
    columns,
    policy=ReplacementPolicy(settings.preserve_ratio, settings.preserve_min_existing),
)
sessions = SessionRegistry()
tutorials = TutorialStore(Path(settings.state_file))


@app.on_event("startup")
async def startup_event():
    configure_logging(settings.log_format, settings.log_level)
    logger.info("ColumnDesk started", strapi_url=settings.strapi_url)


@app.exception_handler(DeskError)
async def desk_error_handler(request: Request, exc: DeskError):
    body = {"detail": exc.message, "error": type(exc).__name__}
    if isinstance(exc, ConflictError):
        body["count"] = exc.count
    if isinstance(exc, TransportError) and exc.status is not None:
        body["upstream_status"] = exc.status
    return JSONResponse(status_code=exc.status_code, content=body)


def _links_view(entity: dict, links) -> dict:
    return {
        "id": entity.get("id"),
        "documentId": entity.get("documentId"),
        "title": entity.get("title"),
        "links": [l.canonical() for l in links],
        "count": len(links),
    }


@app.post("/api/login")
async def login(body: LoginIn):
    result = await run_blocking(client.login, body.identifier, body.password)
    return {"ok": True, "user": result.get("user")}


# ----- column links -----


@app.get("/api/columns/{id}/links")
async def get_column_links(id: str, refresh: bool = False):
    entity = await columns.load(id, refresh=refresh)
    return _links_view(entity, extract_links(entity))


@app.post("/api/columns/{id}/links")
async def append_column_links(id: str, body: LinkBatchIn):
    result = await columns.append(id, body.links)
    return {"added": result.added, **_links_view(result.entity, result.links)}


@app.get("/api/columns/{id}/pending")
def get_pending(id: str):
    session = sessions.get(id)
    return {
        "pending": [l.canonical() for l in session.pending],
        "saved": [l.canonical() for l in session.saved],
    }


@app.post("/api/columns/{id}/pending")
def add_pending(id: str, link: Optional[LinkRecord] = None):
    index = sessions.get(id).add(link or LinkRecord())
    return {"index": index}


@app.patch("/api/columns/{id}/pending/{index}")
def edit_pending(id: str, index: int, patch: LinkPatch):
    session = sessions.get(id)
    if not 0 <= index < len(session.pending):
        raise HTTPException(404, "No pending link at that index")
    link = session.edit(index, patch.model_dump(exclude_unset=True))
    return link.canonical()


@app.delete("/api/columns/{id}/pending/{index}")
def remove_pending(id: str, index: int):
    session = sessions.get(id)
    if not 0 <= index < len(session.pending):
        raise HTTPException(404, "No pending link at that index")
    session.remove(index)
    return {"ok": True, "remaining": len(session.pending)}


@app.post("/api/columns/{id}/pending/submit")
async def submit_pending(id: str):
    session = sessions.get(id)
    result = await session.submit(columns)
    return {
        "added": result.added,
        "saved": [l.canonical() for l in session.saved],
        **_links_view(result.entity, result.links),
    }


# ----- columns -----


@app.post("/api/columns")
async def create_column(form: ColumnForm):
    return {"data": await content.create_column(form)}


@app.put("/api/columns/{id}")
async def update_column(id: str, form: ColumnForm):
    return {"data": await content.update_column(id, form)}


# ----- calendar -----


@app.get("/api/calendar")
async def get_calendar(year: Optional[int] = None, month: Optional[int] = None):
    if (year is None) != (month is None):
        raise HTTPException(400, "year and month must be given together")
    if month is not None and not 1 <= month <= 12:
        raise HTTPException(400, "month must be between 1 and 12")
    items = await load_schedule(client, year, month)
    return {
        "items": [i.model_dump(by_alias=True) for i in items],
        "byDay": {
            day: [i.model_dump(by_alias=True) for i in day_items]
            for day, day_items in group_by_day(items).items()
        },
        "count": len(items),
    }


# ----- onboarding -----


@app.get("/api/tutorials/{feature}")
def tutorial_status(feature: str):
    return {"feature": feature, "completed": tutorials.is_completed(feature)}


@app.post("/api/tutorials/{feature}")
def complete_tutorial(feature: str):
    tutorials.complete(feature)
    return {"feature": feature, "completed": True}


@app.delete("/api/tutorials/{feature}")
def reset_tutorial(feature: str):
    tutorials.reset(feature)
    return {"feature": feature, "completed": False}


# ----- articles, events, video episodes -----


def _entry_form(collection: str, payload: dict):
    if collection not in ENTRY_KINDS:
        raise HTTPException(404, f"Unknown collection: {collection}")
    form_type, _ = ENTRY_KINDS[collection]
    try:
        return form_type.model_validate(payload)
    except PydanticValidationError as exc:
        raise HTTPException(422, str(exc))


@app.post("/api/{collection}")
async def create_entry(collection: str, payload: dict):
    form = _entry_form(collection, payload)
    return {"data": await content.create_entry(collection, form)}


@app.put("/api/{collection}/{id}")
async def update_entry(collection: str, id: str, payload: dict):
    form = _entry_form(collection, payload)
    return {"data": await content.update_entry(collection, id, form)}


@app.delete("/api/{collection}/{id}")
async def delete_entry(collection: str, id: str):
    if collection not in ENTRY_KINDS:
        raise HTTPException(404, f"Unknown collection: {collection}")
    await content.delete_entry(collection, id)
    return {"ok": True}
