"""
Unit tests for the session registry.

Tests registration, lifecycle delegation, the lifetime cost counter and
serialized concurrent updates.
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest

from usage_governor.core.errors import (
    AlreadyEnded,
    DuplicateSession,
    InvalidState,
    UnknownSession,
    UnknownTask,
)
from usage_governor.core.pricing import PricingEntry, PricingTable
from usage_governor.core.session import complete_task, create_session, start_task
from usage_governor.core.task import TaskStatus
from usage_governor.storage.registry import SessionRegistry


class TestSessionRegistration:
    """Test creating and looking up sessions."""

    def test_create_and_get(self):
        """Verify a created session can be fetched by id."""
        registry = SessionRegistry()
        session = registry.create_session("s1")

        assert "s1" in registry
        assert len(registry) == 1
        assert registry.get("s1") is session

    def test_generated_id(self):
        """Verify an id is generated when none is given."""
        registry = SessionRegistry()
        session = registry.create_session()
        assert registry.session_ids() == [session.session_id]

    def test_duplicate_session(self):
        """Verify ids cannot be registered twice."""
        registry = SessionRegistry()
        registry.create_session("s1")
        with pytest.raises(DuplicateSession, match="s1"):
            registry.create_session("s1")

    def test_ended_session_id_not_reusable(self):
        """Verify ended sessions keep their id."""
        registry = SessionRegistry()
        registry.create_session("s1")
        registry.end_session("s1")
        with pytest.raises(DuplicateSession):
            registry.create_session("s1")

    def test_register_existing_value(self):
        """Verify externally created sessions can be registered."""
        registry = SessionRegistry()
        registry.register(create_session("s1"))
        assert "s1" in registry

    def test_unknown_session(self):
        """Verify unknown ids raise UnknownSession."""
        registry = SessionRegistry()
        with pytest.raises(UnknownSession, match="nope"):
            registry.get("nope")
        with pytest.raises(UnknownSession):
            registry.track_task("nope", "t1", "gpt-4o", "generation")


class TestRegistryLifecycle:
    """Test lifecycle operations through the registry."""

    def test_track_and_complete(self):
        """Verify tasks can be tracked and completed by session id."""
        registry = SessionRegistry()
        registry.create_session("s1")

        pending = registry.track_task("s1", "t1", "gpt-4o", "generation", "base")
        assert pending.status == TaskStatus.PENDING

        completed = registry.complete_task_global(
            "s1", "t1", 1000, 500,
            metrics={"reusabilityScore": 8, "artifactsProduced": ["Button"]},
        )
        assert completed.total_cost == Decimal("0.0125")
        assert registry.get("s1").total_cost == Decimal("0.0125")
        assert registry.get("s1").hierarchy.base_artifacts == 1

    def test_failed_operation_leaves_session_unchanged(self):
        """Verify a raising operation does not replace the stored value."""
        registry = SessionRegistry()
        before = registry.create_session("s1")

        with pytest.raises(UnknownTask):
            registry.complete_task_global("s1", "missing", 10, 10)

        assert registry.get("s1") is before
        assert registry.total_lifetime_cost == 0

    def test_end_session(self):
        """Verify ending through the registry keeps the session registered."""
        registry = SessionRegistry()
        registry.create_session("s1")
        ended = registry.end_session("s1")

        assert ended.is_active is False
        assert registry.get("s1").is_active is False
        with pytest.raises(AlreadyEnded):
            registry.end_session("s1")
        with pytest.raises(InvalidState):
            registry.track_task("s1", "t1", "gpt-4o", "generation")

    def test_lifetime_cost_across_sessions(self):
        """Verify lifetime cost sums completions across every session."""
        registry = SessionRegistry()
        for session_id in ("s1", "s2"):
            registry.create_session(session_id)
            registry.track_task(session_id, "t1", "gpt-4o", "generation")
            registry.complete_task_global(session_id, "t1", 1000, 500)
        registry.end_session("s1")

        assert registry.total_lifetime_cost == Decimal("0.025")

    def test_register_counts_existing_cost(self):
        """Verify a registered session's spend joins the lifetime cost."""
        session = create_session("s1")
        session = start_task(session, "t1", "gpt-4o", "generation")
        session = complete_task(session, "t1", 1000, 500)
        registry = SessionRegistry()

        registry.register(session)

        assert registry.total_lifetime_cost == Decimal("0.0125")
        registry.track_task("s1", "t2", "gpt-4o", "generation")
        registry.complete_task_global("s1", "t2", 1000, 500)
        assert registry.total_lifetime_cost == Decimal("0.025")

    def test_registry_pricing_applies(self):
        """Verify sessions created by the registry use its pricing."""
        pricing = PricingTable(
            entries={"cheap": PricingEntry(Decimal("1"), Decimal("1"))},
            default_model="cheap",
        )
        registry = SessionRegistry(pricing=pricing)
        registry.create_session("s1")
        registry.track_task("s1", "t1", "gpt-4o", "generation")
        record = registry.complete_task_global("s1", "t1", 1000000, 0)

        assert record.total_cost == Decimal("1")
        assert record.pricing_fallback is True


class TestConcurrentUpdates:
    """Test that concurrent completions are never lost."""

    def test_concurrent_completions_same_session(self):
        """Verify parallel completions against one session all land."""
        registry = SessionRegistry()
        registry.create_session("s1")
        task_ids = [f"t{i}" for i in range(50)]
        for task_id in task_ids:
            registry.track_task("s1", task_id, "gpt-4o", "generation")

        def complete(task_id):
            return registry.complete_task_global("s1", task_id, 1000, 500)

        with ThreadPoolExecutor(max_workers=8) as executor:
            list(executor.map(complete, task_ids))

        session = registry.get("s1")
        assert session.completed_count == 50
        assert session.total_cost == Decimal("0.0125") * 50
        assert session.model_rollup["gpt-4o"].task_count == 50
        assert registry.total_lifetime_cost == session.total_cost

    def test_concurrent_sessions(self):
        """Verify sessions are updated independently in parallel."""
        registry = SessionRegistry()
        session_ids = [f"s{i}" for i in range(10)]
        for session_id in session_ids:
            registry.create_session(session_id)

        def run(session_id):
            for i in range(5):
                registry.track_task(session_id, f"t{i}", "gpt-4o", "generation")
                registry.complete_task_global(session_id, f"t{i}", 1000, 500)

        with ThreadPoolExecutor(max_workers=5) as executor:
            list(executor.map(run, session_ids))

        for session_id in session_ids:
            assert registry.get(session_id).completed_count == 5
        assert registry.total_lifetime_cost == Decimal("0.0125") * 50
