"""
Session registry.

Process-wide store mapping session identifiers to their current tracker
value, plus a lifetime cost counter. It is meant to be created once and
injected into callers rather than accessed as a global.

Every read-modify-write runs under one lock per session id, so two
concurrent completions against the same session cannot both read the same
prior value and overwrite each other's update.
"""

import logging
import threading
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..core.errors import DuplicateSession, UnknownSession
from ..core.hierarchy import HierarchyConfig
from ..core.pricing import PricingTable
from ..core.session import (
    MetricsInput,
    SessionTracker,
    complete_task,
    create_session,
    end_session,
    start_task,
)
from ..core.task import TaskRecord

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Thread-safe store of session trackers.

    Ended sessions stay registered for audit, so their identifiers cannot be
    reused.
    """

    def __init__(
        self,
        pricing: Optional[PricingTable] = None,
        hierarchy_config: Optional[HierarchyConfig] = None,
    ):
        """Initialize an empty registry.

        Args:
            pricing: Pricing table for sessions created through the registry
            hierarchy_config: Hierarchy settings for sessions created here
        """
        self.pricing = pricing
        self.hierarchy_config = hierarchy_config
        self._sessions: Dict[str, SessionTracker] = {}
        self._key_locks: Dict[str, threading.Lock] = {}
        self._lock = threading.Lock()
        self._total_lifetime_cost = Decimal("0")

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    @property
    def total_lifetime_cost(self) -> Decimal:
        """Cost of every task completed through the registry."""
        with self._lock:
            return self._total_lifetime_cost

    def session_ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions)

    def create_session(
        self,
        session_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> SessionTracker:
        """Create and register a new session.

        Raises:
            DuplicateSession: If the identifier is already registered
        """
        session = create_session(
            session_id,
            pricing=self.pricing,
            hierarchy_config=self.hierarchy_config,
            now=now,
        )
        self.register(session)
        return session

    def register(self, session: SessionTracker) -> None:
        """Register an existing session value.

        Raises:
            DuplicateSession: If the identifier is already registered
        """
        with self._lock:
            if session.session_id in self._sessions:
                raise DuplicateSession(session.session_id)
            self._sessions[session.session_id] = session
            self._key_locks[session.session_id] = threading.Lock()
            self._total_lifetime_cost += session.total_cost
        logger.debug("Registered session %s", session.session_id)

    def get(self, session_id: str) -> SessionTracker:
        """Get the current value of a session.

        Raises:
            UnknownSession: If the identifier is not registered
        """
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise UnknownSession(session_id)
        return session

    def _key_lock(self, session_id: str) -> threading.Lock:
        with self._lock:
            lock = self._key_locks.get(session_id)
        if lock is None:
            raise UnknownSession(session_id)
        return lock

    def update(
        self,
        session_id: str,
        operation: Callable[[SessionTracker], SessionTracker],
    ) -> SessionTracker:
        """Apply a lifecycle operation and store the result.

        The read, the operation and the write are serialized per session id.
        If the operation raises, the stored value is left unchanged.

        Raises:
            UnknownSession: If the identifier is not registered
        """
        with self._key_lock(session_id):
            current = self.get(session_id)
            updated = operation(current)
            with self._lock:
                self._sessions[session_id] = updated
                self._total_lifetime_cost += updated.total_cost - current.total_cost
        return updated

    def track_task(
        self,
        session_id: str,
        task_id: str,
        model_id: str,
        task_category: str,
        classification_level: Optional[str] = None,
    ) -> TaskRecord:
        """Start a task in a registered session and return the pending record."""
        updated = self.update(
            session_id,
            lambda session: start_task(
                session, task_id, model_id, task_category, classification_level
            ),
        )
        return updated.tasks[task_id]

    def complete_task_global(
        self,
        session_id: str,
        task_id: str,
        input_tokens: int,
        output_tokens: int,
        succeeded: bool = True,
        error_message: Optional[str] = None,
        metrics: MetricsInput = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> TaskRecord:
        """Complete a task in a registered session and return the completed record."""
        updated = self.update(
            session_id,
            lambda session: complete_task(
                session,
                task_id,
                input_tokens,
                output_tokens,
                succeeded=succeeded,
                error_message=error_message,
                metrics=metrics,
                metadata=metadata,
            ),
        )
        return updated.tasks[task_id]

    def end_session(self, session_id: str) -> SessionTracker:
        """End a registered session and return its final value."""
        return self.update(session_id, end_session)
