"""
Display handles: session-owned byte buffers served at /handles/<id>.

Each UI slot owns at most one handle. replace() releases the slot's
previous handle before installing the new one, so buffers never pile up
across submissions.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from api.models import HandleInfo, Slot

logger = logging.getLogger(__name__)


@dataclass
class DisplayHandle:
    handle_id: str
    slot: Slot
    data: bytes
    content_type: str
    filename: Optional[str] = None

    @property
    def url(self) -> str:
        return f"/handles/{self.handle_id}"

    def info(self) -> HandleInfo:
        return HandleInfo(handle_id=self.handle_id, url=self.url, content_type=self.content_type)


class HandleArena:
    """Slot-keyed registry of live display handles."""

    def __init__(self) -> None:
        self._by_slot: dict[Slot, DisplayHandle] = {}
        self._by_id: dict[str, DisplayHandle] = {}

    def replace(
        self,
        slot: Slot,
        data: bytes,
        content_type: str,
        filename: Optional[str] = None,
    ) -> DisplayHandle:
        self.release(slot)
        handle = DisplayHandle(
            handle_id=uuid.uuid4().hex,
            slot=slot,
            data=data,
            content_type=content_type,
            filename=filename,
        )
        self._by_slot[slot] = handle
        self._by_id[handle.handle_id] = handle
        return handle

    def release(self, slot: Slot) -> None:
        handle = self._by_slot.pop(slot, None)
        if handle is not None:
            self._by_id.pop(handle.handle_id, None)
            logger.debug("Released %s handle %s", slot.value, handle.handle_id)

    def release_all(self) -> None:
        for slot in list(self._by_slot):
            self.release(slot)

    def current(self, slot: Slot) -> Optional[DisplayHandle]:
        return self._by_slot.get(slot)

    def get(self, handle_id: str) -> Optional[DisplayHandle]:
        return self._by_id.get(handle_id)

    def __len__(self) -> int:
        return len(self._by_id)
