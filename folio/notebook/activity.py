"""Activity events and a bounded in-memory activity log."""

from __future__ import annotations

import logging
import uuid
from collections import deque
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger("folio.notebook")

DEFAULT_MAX_RECORDS = 50


class ActivityType(StrEnum):
    CELL_EXECUTED = "CELL_EXECUTED"
    PAGE_SAVED = "PAGE_SAVED"


def generate_activity_id() -> str:
    return "act_" + uuid.uuid4().hex[:12]


class ActivityEvent(BaseModel):
    id: str = Field(default_factory=generate_activity_id)
    type: ActivityType
    project_id: str = ""
    page_id: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())


class InMemoryActivityLog:
    """Keeps the most recent events, newest first."""

    def __init__(self, max_records: int = DEFAULT_MAX_RECORDS) -> None:
        self._events: deque[ActivityEvent] = deque(maxlen=max_records)

    def record(self, event: ActivityEvent) -> None:
        self._events.appendleft(event)
        logger.debug("Activity %s %s", event.type, event.metadata)

    def events(self, activity_type: ActivityType | None = None) -> list[ActivityEvent]:
        return [e for e in self._events if activity_type is None or e.type == activity_type]

    def __len__(self) -> int:
        return len(self._events)
