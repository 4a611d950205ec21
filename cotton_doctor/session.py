import itertools
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import numpy as np

from cotton_doctor.diagnosis import DiagnosisResult

logger = logging.getLogger(__name__)

IDLE = "idle"
LOADING = "loading"

_request_ids = itertools.count(1)


@dataclass
class SessionState:
    """Transient last-result slot for one user session.

    Only the most recently issued request may complete; anything that finishes
    after a newer ``begin()`` is dropped.
    """

    status: str = IDLE
    error: Optional[str] = None
    result: Optional[DiagnosisResult] = None
    insights: Optional[str] = None
    request_id: Optional[int] = None

    def begin(self) -> int:
        self.request_id = next(_request_ids)
        self.status = LOADING
        self.error = None
        return self.request_id

    def is_current(self, request_id: int) -> bool:
        return self.request_id == request_id

    def complete(self, request_id: int, result: DiagnosisResult, insights: Optional[str] = None) -> bool:
        if not self.is_current(request_id):
            logger.info(f"Discarding stale result for request {request_id}")
            return False
        self.result = result
        self.insights = insights
        self.status = IDLE
        return True

    def attach_insights(self, request_id: int, insights: str) -> bool:
        if not self.is_current(request_id):
            return False
        self.insights = insights
        return True

    def fail(self, request_id: int, message: str) -> bool:
        if not self.is_current(request_id):
            return False
        self.status = IDLE
        self.error = message
        return True

    def clear(self) -> None:
        self.status = IDLE
        self.error = None
        self.result = None
        self.insights = None
        self.request_id = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "error": self.error,
            "result": self.result.to_dict() if self.result else None,
            "insights": self.insights,
        }


@dataclass
class DiagnosisContext:
    """Everything an inference needs from its caller."""

    session: SessionState
    user_id: Optional[str] = None
    rng: np.random.Generator = field(default_factory=np.random.default_rng)


class SessionStore:
    """Session states by key, keeping at most ``max_size`` of the most recently used."""

    def __init__(self, max_size: int = 1000):
        self.max_size = max_size
        self._sessions: "OrderedDict[str, SessionState]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, key: str) -> SessionState:
        if key in self._sessions:
            self._sessions.move_to_end(key)
            return self._sessions[key]
        session = self._sessions[key] = SessionState()
        while len(self._sessions) > self.max_size:
            evicted, _ = self._sessions.popitem(last=False)
            logger.info(f"Evicted session {evicted}")
        return session

    def peek(self, key: str) -> Optional[SessionState]:
        return self._sessions.get(key)

    def drop(self, key: str) -> None:
        self._sessions.pop(key, None)
