"""
Assessment session management.

Sessions live in process memory only; nothing survives a restart.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from app.core.fallback import FallbackPolicy
from app.core.llm import GenerationClient, build_generation_client
from app.core.log import get_logger
from app.core.workflow import StageController


logger = get_logger("session")


@dataclass
class AssessmentSession:
    session_id: str
    controller: StageController
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class SessionRegistry:
    """Holds one StageController per active assessment session."""

    def __init__(
        self,
        client_factory: Callable[[], GenerationClient] = build_generation_client,
        fallback: Optional[FallbackPolicy] = None,
    ):
        self._client_factory = client_factory
        self._fallback = fallback or FallbackPolicy()
        self._client: Optional[GenerationClient] = None
        self._sessions: Dict[str, AssessmentSession] = {}

    @property
    def client(self) -> GenerationClient:
        if self._client is None:
            self._client = self._client_factory()
        return self._client

    def create(self) -> AssessmentSession:
        session_id = f"risk_{uuid.uuid4().hex[:12]}"
        controller = StageController(client=self.client, fallback=self._fallback)
        session = AssessmentSession(session_id=session_id, controller=controller)
        self._sessions[session_id] = session
        logger.info("Created assessment session %s", session_id)
        return session

    def get(self, session_id: str) -> Optional[AssessmentSession]:
        return self._sessions.get(session_id)

    def delete(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.controller.reset()
        return True

    def list_sessions(self) -> List[AssessmentSession]:
        return list(self._sessions.values())


_registry: Optional[SessionRegistry] = None


def get_registry() -> SessionRegistry:
    """Process-wide registry used by the HTTP routes."""
    global _registry
    if _registry is None:
        _registry = SessionRegistry()
    return _registry
