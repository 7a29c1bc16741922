# Tests for the singleton shutdown/reset registry
# Created: 2026-02-14

import pytest

from missionsync import lifecycle


@pytest.fixture(autouse=True)
def clean_registry():
    lifecycle.reset_all()
    yield
    lifecycle.reset_all()


class TestLifecycle:
    """Tests for register/shutdown_all/reset_all."""

    @pytest.mark.asyncio
    async def test_shutdown_runs_newest_first(self):
        calls = []

        async def async_close():
            calls.append("async")

        lifecycle.register("a", shutdown=async_close)
        lifecycle.register("b", shutdown=lambda: calls.append("sync"))
        lifecycle.register("c", reset=lambda: None)

        await lifecycle.shutdown_all()
        assert calls == ["sync", "async"]
        assert lifecycle.registered() == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_failing_shutdown_does_not_stop_others(self):
        calls = []

        def boom():
            raise RuntimeError("nope")

        lifecycle.register("bad", shutdown=boom)
        lifecycle.register("good", shutdown=lambda: calls.append("good"))
        await lifecycle.shutdown_all()
        assert calls == ["good"]

    def test_reset_all_clears(self):
        calls = []
        lifecycle.register("a", reset=lambda: calls.append("a"))
        lifecycle.register("b", reset=lambda: 1 / 0)
        lifecycle.register("c", reset=lambda: calls.append("c"))
        lifecycle.reset_all()
        assert calls == ["a", "c"]
        assert lifecycle.registered() == []

    def test_register_replaces(self):
        lifecycle.register("a", reset=lambda: None)
        lifecycle.register("b", reset=lambda: None)
        lifecycle.register("a", reset=lambda: None)
        assert lifecycle.registered() == ["b", "a"]

    def test_unregister(self):
        lifecycle.register("a")
        assert lifecycle.unregister("a")
        assert not lifecycle.unregister("a")
        assert lifecycle.registered() == []
