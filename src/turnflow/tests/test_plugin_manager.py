"""Tests for PluginManager dispatch."""

import pytest

from turnflow.errors import DuplicatePluginError
from turnflow.plugins import BasePlugin, PluginManager
from turnflow.tests.testing_utils import EchoAgent, RecordingPlugin, create_invocation_context
from turnflow.types import Content


class _FailingPlugin(BasePlugin):
    def __init__(self, name: str = "failing") -> None:
        super().__init__(name)
        self.closed = False

    async def before_run_callback(self, *, invocation_context):
        raise RuntimeError("boom")

    async def close(self) -> None:
        self.closed = True
        raise RuntimeError("close failed")


@pytest.mark.unit
class TestPluginManager:
    """Tests for PluginManager."""

    def test_duplicate_names_rejected(self) -> None:
        """Test two plugins with one name cannot be registered."""
        manager = PluginManager([RecordingPlugin("p")])
        with pytest.raises(DuplicatePluginError):
            manager.register_plugin(RecordingPlugin("p"))

    def test_get_plugin(self) -> None:
        """Test plugins are found by name."""
        plugin = RecordingPlugin("p")
        manager = PluginManager([plugin])
        assert manager.get_plugin("p") is plugin
        assert manager.get_plugin("missing") is None

    @pytest.mark.asyncio
    async def test_first_non_none_wins(self) -> None:
        """Test later plugins are skipped once one returns a value."""
        silent = RecordingPlugin("silent")
        answering = RecordingPlugin(
            "answering", before_run_callback=Content.from_text("first", role="model")
        )
        ignored = RecordingPlugin(
            "ignored", before_run_callback=Content.from_text("second", role="model")
        )
        manager = PluginManager([silent, answering, ignored])
        ctx = await create_invocation_context(EchoAgent(), plugins=[])

        result = await manager.run_before_run_callback(invocation_context=ctx)

        assert result.text == "first"
        assert silent.calls == {"before_run_callback": 1}
        assert answering.calls == {"before_run_callback": 1}
        assert ignored.calls == {}

    @pytest.mark.asyncio
    async def test_no_opinion_returns_none(self) -> None:
        """Test None when every plugin returns None."""
        manager = PluginManager([RecordingPlugin("a"), RecordingPlugin("b")])
        ctx = await create_invocation_context(EchoAgent())
        assert await manager.run_on_event_callback(invocation_context=ctx, event=None) is None

    @pytest.mark.asyncio
    async def test_error_propagates_and_stops_chain(self) -> None:
        """Test a failing hook raises its own error and skips later plugins."""
        later = RecordingPlugin("later")
        manager = PluginManager([_FailingPlugin(), later])
        ctx = await create_invocation_context(EchoAgent())

        with pytest.raises(RuntimeError, match="boom"):
            await manager.run_before_run_callback(invocation_context=ctx)
        assert later.calls == {}

    @pytest.mark.asyncio
    async def test_after_run_calls_every_plugin(self) -> None:
        """Test after_run reaches all plugins even though it returns nothing."""
        first, second = RecordingPlugin("a"), RecordingPlugin("b")
        manager = PluginManager([first, second])
        ctx = await create_invocation_context(EchoAgent())

        await manager.run_after_run_callback(invocation_context=ctx)

        assert first.calls == {"after_run_callback": 1}
        assert second.calls == {"after_run_callback": 1}

    @pytest.mark.asyncio
    async def test_close_reaches_all_then_raises(self) -> None:
        """Test close visits every plugin before re-raising the first failure."""
        failing = _FailingPlugin()
        other = _FailingPlugin("other")
        manager = PluginManager([failing, other])

        with pytest.raises(RuntimeError, match="close failed"):
            await manager.close()
        assert failing.closed and other.closed
