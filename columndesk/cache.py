from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from .urls import coerce_id


def alias_key(alias: Any) -> str:
    """`7`, `"7"` and `" 7 "` all address the same slot."""
    return str(coerce_id(alias))


@dataclass
class ColumnIdentity:
    """
    One logical column and every identifier the CMS accepts for it.

    `aliases()` yields them in the order updates should try them:
    document id, storage id, then whatever the caller navigated with.
    Caller ids of identities merged into this one come last.
    """

    caller_id: Any
    document_id: Optional[str] = None
    storage_id: Optional[int] = None
    merged_ids: List[Any] = field(default_factory=list)

    @property
    def key(self) -> str:
        """Stable for the lifetime of the identity, whatever ids it learns later."""
        return alias_key(self.caller_id)

    def aliases(self) -> List[Any]:
        ordered: List[Any] = []
        seen = set()
        candidates = [self.document_id, self.storage_id, coerce_id(self.caller_id)]
        candidates.extend(coerce_id(c) for c in self.merged_ids)
        for candidate in candidates:
            if candidate is None or candidate == "":
                continue
            k = alias_key(candidate)
            if k in seen:
                continue
            seen.add(k)
            ordered.append(candidate)
        return ordered

    def learn(self, entity: Optional[Dict[str, Any]]):
        """Record the ids the CMS reported for this column."""
        if not entity:
            return
        if entity.get("documentId"):
            self.document_id = entity["documentId"]
        if entity.get("id") is not None:
            self.storage_id = entity["id"]

    def absorb(self, other: "ColumnIdentity"):
        """Take over the ids of another identity for the same column."""
        if other.document_id and not self.document_id:
            self.document_id = other.document_id
        if other.storage_id is not None and self.storage_id is None:
            self.storage_id = other.storage_id
        for alias in other.aliases():
            if alias_key(alias) not in {alias_key(a) for a in self.aliases()}:
                self.merged_ids.append(alias)


class IdentityTable:
    """Resolution table from any known alias to its ColumnIdentity."""

    def __init__(self):
        self._by_alias: Dict[str, ColumnIdentity] = {}

    def resolve(self, caller_id: Any) -> ColumnIdentity:
        identity = self._by_alias.get(alias_key(caller_id))
        if identity is None:
            identity = ColumnIdentity(caller_id=caller_id)
            self._by_alias[alias_key(caller_id)] = identity
        return identity

    def register(self, identity: ColumnIdentity) -> ColumnIdentity:
        """
        Point every alias of `identity` at it. When one of those aliases
        already belongs to another identity, the two are the same column:
        the existing one absorbs `identity` and is returned instead.
        """
        canonical = identity
        for alias in identity.aliases():
            other = self._by_alias.get(alias_key(alias))
            if other is not None and other is not identity:
                canonical = other
                break
        if canonical is not identity:
            canonical.absorb(identity)
        for alias in identity.aliases() + canonical.aliases():
            self._by_alias[alias_key(alias)] = canonical
        return canonical


@dataclass
class AliasCache:
    """Entity snapshots keyed by identifier alias. Last writer wins per slot."""

    _slots: Dict[str, Any] = field(default_factory=dict)

    def get(self, alias: Any) -> Optional[Any]:
        return self._slots.get(alias_key(alias))

    def put(self, alias: Any, snapshot: Any):
        self._slots[alias_key(alias)] = snapshot

    def put_all(self, aliases: Iterable[Any], snapshot: Any) -> List[str]:
        keys = []
        for alias in aliases:
            self.put(alias, snapshot)
            keys.append(alias_key(alias))
        return keys

    def invalidate(self, aliases: Iterable[Any]):
        for alias in aliases:
            self._slots.pop(alias_key(alias), None)

    def clear(self):
        self._slots.clear()

    def keys(self) -> List[str]:
        return list(self._slots)
