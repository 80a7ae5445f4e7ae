"""Tests for the in-memory session store."""

from datetime import datetime, timedelta

import pytest

from task_assistant.task_intent.models import ConversationState, TaskInfo
from task_assistant.task_intent.session_store import InMemorySessionStore


@pytest.mark.unit
class TestInMemorySessionStore:
    """Test cases for InMemorySessionStore."""

    def setup_method(self) -> None:
        self.now = datetime(2025, 5, 21, 9, 0)
        self.store: InMemorySessionStore[ConversationState] = InMemorySessionStore(
            timeout_seconds=300,
            timestamp_of=lambda state: state.last_activity,
            clock=lambda: self.now,
        )

    def make_state(self, user_id: str) -> ConversationState:
        return ConversationState(user_id=user_id, task=TaskInfo(), last_activity=self.now)

    def test_set_get_delete(self) -> None:
        """Test basic access."""
        state = self.make_state("alice")
        self.store.set("alice", state)

        assert "alice" in self.store
        assert self.store.get("alice") is state
        assert self.store.delete("alice") is state
        assert self.store.get("alice") is None
        assert self.store.delete("alice") is None

    def test_expiry_is_reported_not_applied_on_read(self) -> None:
        """Test that expired entries stay until swept."""
        state = self.make_state("alice")
        self.store.set("alice", state)

        self.now += timedelta(seconds=301)

        assert self.store.is_expired(state) is True
        assert self.store.get("alice") is state

    def test_sweep_expired(self) -> None:
        """Test that sweeping drops only idle users."""
        self.store.set("alice", self.make_state("alice"))
        self.now += timedelta(seconds=200)
        self.store.set("bob", self.make_state("bob"))
        self.now += timedelta(seconds=200)

        assert self.store.sweep_expired() == ["alice"]
        assert len(self.store) == 1
        assert "bob" in self.store
