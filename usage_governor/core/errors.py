"""
Error types for the usage accounting engine.

All errors are local, synchronous and deterministic. They signal misuse of
the session/task lifecycle rather than transient conditions.
"""

from decimal import Decimal
from typing import Optional


class UsageGovernorError(Exception):
    """Base class for every error raised by the engine."""


class DuplicateSession(UsageGovernorError):
    """Raised when a session identifier is already registered."""
    def __init__(self, session_id: str):
        super().__init__(f"Session already exists: {session_id}")
        self.session_id = session_id


class UnknownSession(UsageGovernorError):
    """Raised when a session identifier is not registered."""
    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class InvalidState(UsageGovernorError):
    """Raised when an operation is not allowed in the current lifecycle state."""
    def __init__(self, message: str, session_id: str, task_id: Optional[str] = None):
        super().__init__(message)
        self.session_id = session_id
        self.task_id = task_id


class DuplicateTask(UsageGovernorError):
    """Raised when a task identifier already exists in a session."""
    def __init__(self, session_id: str, task_id: str):
        super().__init__(f"Task {task_id} already exists in session {session_id}")
        self.session_id = session_id
        self.task_id = task_id


class UnknownTask(UsageGovernorError):
    """Raised when a task identifier is absent from a session."""
    def __init__(self, session_id: str, task_id: str):
        super().__init__(f"Task {task_id} not found in session {session_id}")
        self.session_id = session_id
        self.task_id = task_id


class AlreadyEnded(UsageGovernorError):
    """Raised when ending a session that has already ended."""
    def __init__(self, session_id: str):
        super().__init__(f"Session already ended: {session_id}")
        self.session_id = session_id


class InvalidMetrics(UsageGovernorError, ValueError):
    """Raised when a hierarchy metrics payload is malformed."""


class BudgetExceeded(UsageGovernorError):
    """Raised by the optional budget gate when a session may not start more work."""
    def __init__(self, session_id: str, spent: Decimal, limit: Decimal):
        super().__init__(
            f"Session {session_id} spent ${spent:.4f}, "
            f"limit is ${limit:.4f}"
        )
        self.session_id = session_id
        self.spent = spent
        self.limit = limit
