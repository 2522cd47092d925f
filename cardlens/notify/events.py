"""Completion event sinks for downstream consumers."""

import json
import os
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Protocol, Union

from ..core.constants import EVENT_DETAIL_TYPE, EVENT_SOURCE
from ..utils.log import get_logger


@dataclass
class CardEvent:
    detail: Dict[str, Any]
    source: str = EVENT_SOURCE
    detail_type: str = EVENT_DETAIL_TYPE
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    time: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class EventSink(Protocol):
    def emit(self, event: CardEvent) -> None:
        ...


class LogEventSink:
    """Emits events as structured log lines."""

    def __init__(self):
        self.logger = get_logger(__name__)

    def emit(self, event: CardEvent) -> None:
        self.logger.info(
            f"EVENT: {event.detail_type}",
            event_id=event.event_id,
            source=event.source,
            card_id=event.detail.get("cardId"),
            detail=event.detail,
        )


class JsonlEventSink:
    """Appends one JSON object per event to a file."""

    def __init__(self, path: Union[str, Path]):
        self.logger = get_logger(__name__)
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def emit(self, event: CardEvent) -> None:
        line = json.dumps(event.to_dict(), default=str)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(line + "\n")
            f.flush()
            os.fsync(f.fileno())

        self.logger.debug("Event written", path=str(self.path), event_id=event.event_id)
