"""
Optional budget enforcement.

The accounting core only emits advisory warnings. Callers that want hard
enforcement consult this gate before dispatching more work; it is kept
separate from the accounting so both can be tested independently.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from .errors import BudgetExceeded
from .session import SessionTracker, start_task

logger = logging.getLogger(__name__)


def can_start_task(session: SessionTracker, max_session_cost: Decimal) -> bool:
    """Return True if the session is active and still under budget."""
    if not session.is_active:
        return False
    return session.total_cost < Decimal(str(max_session_cost))


def start_task_within_budget(
    session: SessionTracker,
    task_id: str,
    model_id: str,
    task_category: str,
    max_session_cost: Decimal,
    classification_level: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SessionTracker:
    """Start a task only if the session budget allows it.

    Raises:
        BudgetExceeded: If the session has spent its budget
        InvalidState: If the session has ended
        DuplicateTask: If the task id already exists
    """
    limit = Decimal(str(max_session_cost))
    if session.is_active and not can_start_task(session, limit):
        logger.warning(
            "Refusing task %s: session %s spent $%.4f of $%.4f",
            task_id, session.session_id, session.total_cost, limit,
        )
        raise BudgetExceeded(session.session_id, session.total_cost, limit)
    return start_task(session, task_id, model_id, task_category, classification_level, now)
