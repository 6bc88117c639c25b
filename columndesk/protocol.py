"""
Append-and-resync for column links.

The CMS can only replace a column's `links` field as a whole, so appending
means: read the freshest list, merge, write the whole list back, then
refresh every cache slot that can address the column.

Appends on the same column are serialized by a per-column lock. A caller
that cannot get the lock within `resync_wait` seconds goes ahead without
it rather than blocking forever.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from .cache import AliasCache, ColumnIdentity, IdentityTable, alias_key
from .errors import DeskError, NotFoundError
from .log import get_logger
from .models import LinkRecord
from .reconcile import merge_append, validate_batch
from .strapi import StrapiClient, extract_links, run_blocking, unwrap_entity, unwrap_list
from .urls import coerce_id

logger = get_logger(__name__)

LINKS_POPULATE = {"populate": ["links"]}
NO_IDENTIFIER = "no valid identifier found for parent entity"


class AppendState(str, Enum):
    IDLE = "idle"
    RESOLVING_IDENTITY = "resolving_identity"
    FETCHING_LATEST = "fetching_latest"
    MERGING = "merging"
    PERSISTING = "persisting"
    RESYNCING = "resyncing"
    FAILED = "failed"


@dataclass
class AppendResult:
    identity: ColumnIdentity
    alias: Any
    entity: Dict[str, Any]
    links: List[LinkRecord]
    added: int


class ColumnLinkSync:
    def __init__(
        self,
        client: StrapiClient,
        cache: Optional[AliasCache] = None,
        identities: Optional[IdentityTable] = None,
        resync_wait: float = 2.0,
        settle_delay: float = 0.1,
        collection: str = "columns",
    ):
        self.client = client
        self.cache = cache if cache is not None else AliasCache()
        self.identities = identities if identities is not None else IdentityTable()
        self.resync_wait = resync_wait
        self.settle_delay = settle_delay
        self.collection = collection
        self._locks: Dict[str, asyncio.Lock] = {}
        self._states: Dict[str, AppendState] = {}

    def state_of(self, caller_id: Any) -> AppendState:
        identity = self.identities.resolve(caller_id)
        return self._states.get(identity.key, AppendState.IDLE)

    def _set_state(self, identity: ColumnIdentity, state: AppendState):
        self._states[identity.key] = state
        logger.debug("Append state change", column=identity.key, state=state.value)

    async def _call(self, fn, *args):
        return await run_blocking(fn, *args)

    # ----- reads -----

    async def fetch_latest(
        self, identity: ColumnIdentity, rejected: Optional[Set[str]] = None
    ) -> Tuple[Dict[str, Any], Dict[str, Any], Any]:
        """
        GET the column straight from the CMS, trying each alias in preference
        order. Returns (raw payload, flat entity, alias that worked).

        Aliases the CMS answers 404 for are added to `rejected` and skipped
        on later attempts within the same operation.
        """
        rejected = rejected if rejected is not None else set()
        for alias in identity.aliases():
            if alias_key(alias) in rejected:
                continue
            try:
                payload = await self._call(
                    self.client.find_one, self.collection, alias, LINKS_POPULATE
                )
            except NotFoundError:
                logger.info("Column alias not found, trying next", alias=str(alias))
                rejected.add(alias_key(alias))
                continue
            entity = unwrap_entity(payload)
            if entity is None:
                continue
            identity.learn(entity)
            self.identities.register(identity)
            return payload, entity, alias
        raise NotFoundError(NO_IDENTIFIER, identifier=identity.caller_id)

    async def _find_in_list(self, identity: ColumnIdentity) -> Dict[str, Any]:
        """Last resort read: scan the first page of columns for a matching id."""
        params = {"populate": ["links"], "pagination": {"limit": 100}}
        payload = await self._call(self.client.find, self.collection, params)
        wanted = alias_key(identity.caller_id)
        for entity in unwrap_list(payload):
            if alias_key(entity.get("id")) == wanted or entity.get("documentId") == identity.caller_id:
                return {"data": entity, "meta": payload.get("meta")}
        raise NotFoundError(NO_IDENTIFIER, identifier=identity.caller_id)

    async def _resolve_latest(
        self, identity: ColumnIdentity, rejected: Optional[Set[str]] = None
    ) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """
        fetch_latest, falling back to a list scan when every alias is
        rejected. Ids found by the scan are learned and fetched directly;
        if that still fails the scanned record itself is returned.
        """
        rejected = rejected if rejected is not None else set()
        try:
            payload, entity, _ = await self.fetch_latest(identity, rejected)
            return payload, entity
        except NotFoundError:
            listed = await self._find_in_list(identity)

        listed_entity = unwrap_entity(listed) or {}
        identity.learn(listed_entity)
        self.identities.register(identity)
        try:
            payload, entity, _ = await self.fetch_latest(identity, rejected)
        except NotFoundError:
            return listed, listed_entity
        return payload, entity

    async def load(self, caller_id: Any, refresh: bool = False) -> Dict[str, Any]:
        """Read a column with its links, through the alias cache unless `refresh`."""
        identity = self.identities.resolve(caller_id)
        if not refresh:
            cached = self.cache.get(caller_id)
            if cached is not None:
                return unwrap_entity(cached) or {}

        payload, entity = await self._resolve_latest(identity)
        identity = self.identities.resolve(caller_id)
        self.cache.put_all(identity.aliases(), payload)
        return entity

    # ----- append -----

    async def append(
        self, caller_id: Any, incoming: Sequence[LinkRecord]
    ) -> AppendResult:
        validate_batch(incoming)
        identity = self.identities.resolve(caller_id)
        if identity.document_id is None:
            # learn every id first so all aliases of the column share one lock
            try:
                await self._resolve_latest(identity)
            except BaseException:
                self._set_state(identity, AppendState.FAILED)
                raise
            identity = self.identities.resolve(caller_id)

        log = logger.with_context(column=identity.key)
        lock = self._locks.setdefault(identity.key, asyncio.Lock())
        acquired = await self._acquire(lock, log)

        try:
            result = await self._append_locked(identity, incoming, log)
            self._set_state(identity, AppendState.IDLE)
            await asyncio.sleep(self.settle_delay)
            return result
        except BaseException:
            self._set_state(identity, AppendState.FAILED)
            raise
        finally:
            if acquired:
                lock.release()

    async def _acquire(self, lock: asyncio.Lock, log) -> bool:
        """Wait up to `resync_wait` for the lock. False means proceed without it."""
        waiter = asyncio.ensure_future(lock.acquire())
        done, _ = await asyncio.wait({waiter}, timeout=self.resync_wait)
        if waiter in done:
            return True
        waiter.cancel()
        # acquisition can still win the race with cancel()
        waiter.add_done_callback(_release_if_acquired(lock))
        log.warning("Previous append still resyncing; proceeding without lock")
        return False

    async def _append_locked(self, identity, incoming, log) -> AppendResult:
        self._set_state(identity, AppendState.RESOLVING_IDENTITY)
        if not identity.aliases():
            raise NotFoundError(NO_IDENTIFIER, identifier=identity.caller_id)

        self._set_state(identity, AppendState.FETCHING_LATEST)
        rejected: Set[str] = set()
        _, entity = await self._resolve_latest(identity, rejected)
        existing = extract_links(entity)

        self._set_state(identity, AppendState.MERGING)
        final = merge_append(existing, incoming)

        self._set_state(identity, AppendState.PERSISTING)
        alias = self._preferred_alias(identity, rejected)
        if alias is None:
            raise NotFoundError(NO_IDENTIFIER, identifier=identity.caller_id)
        payload, alias = await self._persist(identity, alias, final, log, rejected)

        self._set_state(identity, AppendState.RESYNCING)
        entity = await self._resync(identity, alias, payload, log)

        log.info("Links appended", added=len(incoming), total=len(final), alias=str(alias))
        return AppendResult(
            identity=identity,
            alias=alias,
            entity=entity,
            links=extract_links(entity),
            added=len(incoming),
        )

    async def _persist(self, identity, alias, final, log, rejected=()) -> Tuple[Dict[str, Any], Any]:
        return await self._persist_data(identity, alias, {"links": final}, log, rejected)

    async def _persist_data(self, identity, alias, data, log, rejected=()) -> Tuple[Dict[str, Any], Any]:
        """One PUT, plus a single retry on the next alias if the CMS says 404."""
        try:
            payload = await self._call(self.client.update, self.collection, alias, data)
            return payload, alias
        except NotFoundError:
            fallback = self._next_alias(identity, alias, rejected)
            if fallback is None:
                raise NotFoundError(NO_IDENTIFIER, identifier=identity.caller_id)
            log.warning("Update rejected alias, retrying once", alias=str(alias), fallback=str(fallback))

        try:
            payload = await self._call(self.client.update, self.collection, fallback, data)
        except NotFoundError:
            raise NotFoundError(NO_IDENTIFIER, identifier=identity.caller_id)
        return payload, fallback

    @staticmethod
    def _preferred_alias(identity: ColumnIdentity, rejected=()) -> Optional[Any]:
        for alias in identity.aliases():
            if alias_key(alias) not in rejected:
                return alias
        return None

    @staticmethod
    def _next_alias(identity: ColumnIdentity, alias: Any, rejected=()) -> Optional[Any]:
        aliases = identity.aliases()
        keys = [alias_key(a) for a in aliases]
        try:
            pos = keys.index(alias_key(alias))
        except ValueError:
            pos = -1
        for candidate in aliases[pos + 1:]:
            if alias_key(candidate) not in rejected:
                return candidate
        return None

    async def _resync(self, identity, alias, payload, log) -> Dict[str, Any]:
        entity = unwrap_entity(payload) or {}
        identity.learn(entity)
        self.identities.register(identity)
        self.cache.put_all(identity.aliases(), payload)

        try:
            fresh = await self._call(
                self.client.find_one, self.collection, coerce_id(alias), LINKS_POPULATE
            )
        except DeskError as exc:
            log.warning(f"Re-fetch after append failed, keeping mutation response: {exc}")
            return entity

        fresh_entity = unwrap_entity(fresh)
        if fresh_entity is None:
            return entity
        identity.learn(fresh_entity)
        self.identities.register(identity)
        self.cache.put_all(identity.aliases(), fresh)
        return fresh_entity

    # ----- whole-record update -----

    async def replace(self, caller_id: Any, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        PUT a full column form, preferring the document id, and refresh the
        alias cache with the result. Returns the flat updated entity.
        """
        identity = self.identities.resolve(caller_id)
        log = logger.with_context(column=identity.key)
        aliases = identity.aliases()
        if not aliases:
            raise NotFoundError(NO_IDENTIFIER, identifier=identity.caller_id)

        payload, alias = await self._persist_data(identity, aliases[0], data, log)
        entity = unwrap_entity(payload) or {}
        identity.learn(entity)
        self.identities.register(identity)
        self.cache.put_all(identity.aliases(), payload)
        log.info("Column updated", alias=str(alias))
        return entity


def _release_if_acquired(lock: asyncio.Lock):
    def callback(waiter: asyncio.Future):
        if not waiter.cancelled() and waiter.exception() is None:
            lock.release()

    return callback
