from dataclasses import dataclass, field
from typing import Any, Dict, List

from .log import get_logger
from .models import LinkRecord
from .protocol import AppendResult, ColumnLinkSync

logger = get_logger(__name__)


@dataclass
class LinkSession:
    """
    Per-visit link composition state for one column.

    `pending` is the batch being composed; it is only cleared by a
    successful submit. `saved` collects every batch that made it to the
    CMS during the visit and is never rolled back.
    """

    column_id: Any
    pending: List[LinkRecord] = field(default_factory=list)
    saved: List[LinkRecord] = field(default_factory=list)

    def add(self, link: LinkRecord) -> int:
        self.pending.append(link)
        return len(self.pending) - 1

    def edit(self, index: int, changes: Dict[str, Any]) -> LinkRecord:
        """`changes` is keyed by field name (label, url, description, publish_date)."""
        updated = self.pending[index].model_copy(update=changes)
        self.pending[index] = updated
        return updated

    def remove(self, index: int) -> LinkRecord:
        return self.pending.pop(index)

    async def submit(self, sync: ColumnLinkSync) -> AppendResult:
        batch = list(self.pending)
        result = await sync.append(self.column_id, batch)
        self.saved.extend(batch)
        # rows added while the append was in flight stay pending
        sent = {id(l) for l in batch}
        self.pending = [l for l in self.pending if id(l) not in sent]
        logger.info("Pending links submitted", column=str(self.column_id), added=len(batch))
        return result


class SessionRegistry:
    def __init__(self):
        self._sessions: Dict[str, LinkSession] = {}

    def get(self, column_id: Any) -> LinkSession:
        key = str(column_id)
        if key not in self._sessions:
            self._sessions[key] = LinkSession(column_id=column_id)
        return self._sessions[key]

    def drop(self, column_id: Any):
        self._sessions.pop(str(column_id), None)
