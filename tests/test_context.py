"""Tests for the request context store."""

import asyncio

import pytest

from replicate_mcp.context import ContextStore


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> ContextStore:
    return ContextStore(max_age=600, clock=clock)


class TestCreateAndGet:
    """Test creating and looking up contexts."""

    def test_create_returns_fresh_context(self, store: ContextStore) -> None:
        """create() records the id, session and a live token."""
        context = store.create(1, session_id="s1", credential="r8_x")
        assert context.request_id == 1
        assert context.session_id == "s1"
        assert context.credential == "r8_x"
        assert context.cancellation_token.is_canceled is False
        assert store.get(1, "s1") is context

    def test_credential_not_in_repr(self, store: ContextStore) -> None:
        """The upstream credential is kept out of repr()."""
        context = store.create("a", credential="r8_secret")
        assert "r8_secret" not in repr(context)

    def test_get_missing_returns_none(self, store: ContextStore) -> None:
        """Unknown keys are not an error."""
        assert store.get("missing") is None

    def test_same_id_in_different_sessions_is_distinct(
        self, store: ContextStore
    ) -> None:
        """Contexts are keyed by (session id, request id)."""
        first = store.create(1, session_id="s1")
        second = store.create(1, session_id="s2")
        assert store.get(1, "s1") is first
        assert store.get(1, "s2") is second
        assert len(store) == 2

    def test_string_and_int_ids_do_not_collide(self, store: ContextStore) -> None:
        """String and integer request ids are distinct keys."""
        store.create(1)
        store.create("1")
        assert len(store) == 2

    def test_create_replaces_existing(self, store: ContextStore) -> None:
        """Last write wins for the same key."""
        first = store.create(7)
        second = store.create(7)
        assert store.get(7) is second
        assert first is not second
        assert len(store) == 1

    def test_progress_token_recorded(self, store: ContextStore) -> None:
        context = store.create(3, progress_token="p-1")
        assert context.progress_token == "p-1"


class TestCancel:
    """Test cancellation through the store."""

    def test_cancel_signals_token(self, store: ContextStore) -> None:
        """cancel() fires the context's token and reports success."""
        context = store.create(5, session_id="s1")
        assert store.cancel(5, "s1", reason="stop") is True
        assert context.cancellation_token.is_canceled is True
        assert context.cancellation_token.reason == "stop"

    def test_cancel_unknown_returns_false(self, store: ContextStore) -> None:
        """Cancelling an unknown request is a no-op."""
        assert store.cancel(99) is False

    def test_cancel_is_scoped_to_session(self, store: ContextStore) -> None:
        """Another session cannot cancel a request with the same id."""
        context = store.create(1, session_id="s1")
        assert store.cancel(1, "s2") is False
        assert context.cancellation_token.is_canceled is False

    def test_cancel_session_cancels_only_that_session(
        self, store: ContextStore
    ) -> None:
        """cancel_session() signals every context of one session."""
        a = store.create(1, session_id="s1")
        b = store.create(2, session_id="s1")
        other = store.create(1, session_id="s2")

        assert store.cancel_session("s1") == 2
        assert a.cancellation_token.is_canceled
        assert b.cancellation_token.is_canceled
        assert not other.cancellation_token.is_canceled


class TestDeleteAndSweep:
    """Test removal of contexts."""

    def test_delete_removes_context(self, store: ContextStore) -> None:
        store.create(1)
        store.delete(1)
        assert store.get(1) is None
        assert len(store) == 0

    def test_delete_missing_is_noop(self, store: ContextStore) -> None:
        """Deleting an unknown key does not raise."""
        store.delete("never-created")

    def test_sweep_removes_only_expired(
        self, store: ContextStore, clock: FakeClock
    ) -> None:
        """Contexts older than max_age are dropped, newer ones kept."""
        store.create("old")
        clock.advance(601)
        store.create("new")

        assert store.sweep_expired() == 1
        assert store.get("old") is None
        assert store.get("new") is not None

    def test_sweep_keeps_context_at_exact_max_age(
        self, store: ContextStore, clock: FakeClock
    ) -> None:
        store.create("edge")
        clock.advance(600)
        assert store.sweep_expired() == 0

    def test_swept_token_is_not_canceled(
        self, store: ContextStore, clock: FakeClock
    ) -> None:
        """Sweeping frees bookkeeping only."""
        context = store.create("slow")
        clock.advance(700)
        store.sweep_expired()
        assert context.cancellation_token.is_canceled is False


class TestSweeper:
    """Test the background sweep task."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, store: ContextStore) -> None:
        """The sweeper runs until stopped."""
        store.start_sweeper(interval=60)
        assert store.sweeper_running is True
        await store.stop_sweeper()
        assert store.sweeper_running is False

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self, store: ContextStore) -> None:
        """A second start keeps the running task."""
        store.start_sweeper(interval=60)
        task = store._sweeper
        store.start_sweeper(interval=60)
        assert store._sweeper is task
        await store.stop_sweeper()

    @pytest.mark.asyncio
    async def test_sweeper_removes_expired(self, clock: FakeClock) -> None:
        """The periodic task calls sweep_expired()."""
        store = ContextStore(max_age=1, clock=clock)
        store.create("old")
        clock.advance(5)

        store.start_sweeper(interval=0.01)
        for _ in range(100):
            if len(store) == 0:
                break
            await asyncio.sleep(0.01)
        await store.stop_sweeper()

        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_stop_without_start(self, store: ContextStore) -> None:
        await store.stop_sweeper()
        assert store.sweeper_running is False
