"""
blockhtml Hydration -- Engine Tests

Each island is a HydrationUnit moving pending -> eligible -> activating ->
hydrated (or failed), or pending -> cancelled. Signals come from
SyntheticSignals, so visibility, interaction and idle are driven by hand.

Key properties:
  - units eligible in the same tick activate by priority, then registration order
  - activation happens at most once per unit
  - one failing activation does not affect the others
  - cancelled units never activate
"""

import asyncio

import pytest

from blockhtml.config import settings
from blockhtml.kernel.hydration import (
    ACTIVATING,
    CANCELLED,
    FAILED,
    HYDRATED,
    PENDING,
    HydrationEngine,
    SyntheticSignals,
)
from blockhtml.kernel.renderer import convert_blocks
from blockhtml.kernel.types import HydrationError

# ============================================================================
# Helpers
# ============================================================================


class Recorder:
    """Activation callbacks that record the order they ran in."""

    def __init__(self):
        self.calls = []

    def __call__(self, unit_id):
        def activate():
            self.calls.append(unit_id)

        return activate


def make_engine(strategy="viewport", **kwargs):
    signals = SyntheticSignals()
    return HydrationEngine(strategy, signals=signals, **kwargs), signals


# ============================================================================
# Ordering
# ============================================================================


class TestOrdering:
    @pytest.mark.asyncio
    async def test_higher_priority_first_in_same_tick(self):
        engine, signals = make_engine()
        record = Recorder()
        engine.register("low", record("low"), priority=1)
        engine.register("high", record("high"), priority=5)

        signals.make_visible("low")
        signals.make_visible("high")
        await engine.settle()

        assert record.calls == ["high", "low"]
        assert engine.activation_order == ["high", "low"]

    @pytest.mark.asyncio
    async def test_equal_priority_keeps_registration_order(self):
        engine, signals = make_engine()
        record = Recorder()
        for unit_id in ("a", "b", "c"):
            engine.register(unit_id, record(unit_id))

        signals.make_visible("c", "a", "b")
        await engine.settle()

        assert record.calls == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_separate_ticks_follow_signal_order(self):
        engine, signals = make_engine()
        record = Recorder()
        engine.register("low", record("low"), priority=1)
        engine.register("high", record("high"), priority=5)

        signals.make_visible("low")
        await engine.settle()
        signals.make_visible("high")
        await engine.settle()

        assert record.calls == ["low", "high"]

    @pytest.mark.asyncio
    async def test_priority_blocks_hydrate_immediately(self):
        engine, signals = make_engine(priority_blocks=["core/image"])
        record = Recorder()
        engine.register("img", record("img"), block_name="core/image")
        engine.register("p", record("p"), block_name="core/paragraph")

        await engine.settle()

        assert record.calls == ["img"]
        assert engine.unit("img").strategy == "immediate"
        assert engine.unit("p").state == PENDING


# ============================================================================
# Strategies
# ============================================================================


class TestStrategies:
    @pytest.mark.asyncio
    async def test_immediate(self):
        engine, _ = make_engine("immediate")
        record = Recorder()
        engine.register("a", record("a"))
        assert engine.unit("a").state != HYDRATED
        await engine.settle()
        assert engine.unit("a").state == HYDRATED

    @pytest.mark.asyncio
    async def test_viewport_waits_for_visibility(self):
        engine, signals = make_engine("viewport")
        record = Recorder()
        engine.register("a", record("a"))
        await engine.settle()
        assert record.calls == []

        signals.make_visible("a")
        await engine.settle()
        assert record.calls == ["a"]

    @pytest.mark.asyncio
    async def test_interaction_on_anchor_or_proxy(self):
        engine, signals = make_engine("interaction")
        record = Recorder()
        engine.register("menu", record("menu"), proxies=["menu-button"])

        signals.interact("menu", "scroll")
        await engine.settle()
        assert record.calls == []

        signals.interact("menu-button", "focusin")
        await engine.settle()
        assert record.calls == ["menu"]

    @pytest.mark.asyncio
    async def test_idle_signal(self):
        engine, signals = make_engine("idle", idle_timeout=60)
        record = Recorder()
        engine.register("a", record("a"))
        signals.go_idle()
        await engine.settle()
        assert record.calls == ["a"]

    @pytest.mark.asyncio
    async def test_idle_timeout_fallback(self):
        engine, _ = make_engine("idle", idle_timeout=0.01)
        record = Recorder()
        engine.register("a", record("a"))
        await asyncio.sleep(0.05)
        await engine.settle()
        assert record.calls == ["a"]

    @pytest.mark.asyncio
    async def test_per_unit_strategy_override(self):
        engine, _ = make_engine("viewport")
        record = Recorder()
        engine.register("a", record("a"), strategy="immediate")
        await engine.settle()
        assert record.calls == ["a"]

    def test_unknown_strategy_rejected(self):
        with pytest.raises(HydrationError):
            HydrationEngine("whenever")

    def test_default_strategy_from_settings(self):
        engine = HydrationEngine()
        assert engine.strategy == settings.HYDRATION_STRATEGY
        assert engine.idle_timeout == settings.IDLE_TIMEOUT


# ============================================================================
# Exactly once
# ============================================================================


class TestExactlyOnce:
    @pytest.mark.asyncio
    async def test_duplicate_signals_activate_once(self):
        engine, signals = make_engine()
        record = Recorder()
        engine.register("a", record("a"))

        signals.make_visible("a")
        signals.make_visible("a")
        await engine.settle()
        signals.make_visible("a")
        await engine.settle()

        assert record.calls == ["a"]

    @pytest.mark.asyncio
    async def test_subscriptions_released_after_activation(self):
        engine, signals = make_engine("interaction")
        engine.register("a", Recorder()("a"), proxies=["b"])
        assert signals.subscriber_count() == 2
        await engine.hydrate_block("a")
        assert signals.subscriber_count() == 0

    @pytest.mark.asyncio
    async def test_rehydrate_is_noop(self):
        engine, _ = make_engine()
        record = Recorder()
        engine.register("a", record("a"))

        assert await engine.hydrate_block("a") == HYDRATED
        assert await engine.hydrate_block("a") == HYDRATED
        assert record.calls == ["a"]

    @pytest.mark.asyncio
    async def test_duplicate_registration_rejected(self):
        engine, _ = make_engine()
        engine.register("a", Recorder()("a"))
        with pytest.raises(HydrationError):
            engine.register("a", Recorder()("a"))


# ============================================================================
# Async activations and failures
# ============================================================================


class TestActivation:
    @pytest.mark.asyncio
    async def test_async_activation_passes_through_activating(self):
        engine, _ = make_engine()
        release = asyncio.Event()

        async def activate():
            await release.wait()

        engine.register("a", activate)
        task = asyncio.create_task(engine.hydrate_block("a"))
        await asyncio.sleep(0)
        assert engine.unit("a").state == ACTIVATING

        release.set()
        assert await task == HYDRATED

    @pytest.mark.asyncio
    async def test_failure_is_isolated(self):
        engine, signals = make_engine()
        record = Recorder()

        def broken():
            raise RuntimeError("widget missing")

        engine.register("bad", broken, priority=10)
        engine.register("good", record("good"))

        signals.make_visible("bad", "good")
        await engine.settle()

        assert engine.unit("bad").state == FAILED
        assert isinstance(engine.unit("bad").error, RuntimeError)
        assert engine.unit("bad").to_dict()["error"] == "RuntimeError('widget missing')"
        assert engine.unit("good").state == HYDRATED
        assert record.calls == ["good"]

    @pytest.mark.asyncio
    async def test_async_failure_is_isolated(self):
        engine, _ = make_engine()

        async def broken():
            raise ValueError("no data")

        engine.register("bad", broken)
        engine.register("good", Recorder()("good"))
        states = await engine.hydrate_all()

        assert states == {"bad": FAILED, "good": HYDRATED}

    @pytest.mark.asyncio
    async def test_activation_raising_cancelled_error_fails(self):
        engine, _ = make_engine()

        async def interrupted():
            raise asyncio.CancelledError()

        engine.register("bad", interrupted)
        engine.register("good", Recorder()("good"))
        states = await asyncio.wait_for(engine.hydrate_all(), 1.0)

        assert states == {"bad": FAILED, "good": HYDRATED}
        assert isinstance(engine.unit("bad").error, asyncio.CancelledError)

    @pytest.mark.asyncio
    async def test_cancelled_activation_task_settles(self):
        engine, _ = make_engine()

        async def forever():
            await asyncio.Event().wait()

        engine.register("a", forever)
        waiter = asyncio.create_task(engine.hydrate_block("a"))
        await asyncio.sleep(0)
        engine.unit("a").task.cancel()

        assert await asyncio.wait_for(waiter, 1.0) == FAILED
        await engine.settle()


# ============================================================================
# hydrate_all / cancel / destroy
# ============================================================================


class TestForcing:
    @pytest.mark.asyncio
    async def test_hydrate_all_bypasses_strategy_in_priority_order(self):
        engine, _ = make_engine("interaction")
        record = Recorder()
        engine.register("a", record("a"), priority=1)
        engine.register("b", record("b"), priority=3)
        engine.register("c", record("c"), priority=2)

        states = await engine.hydrate_all()

        assert record.calls == ["b", "c", "a"]
        assert set(states.values()) == {HYDRATED}

    @pytest.mark.asyncio
    async def test_hydrate_all_skips_cancelled(self):
        engine, _ = make_engine()
        record = Recorder()
        engine.register("a", record("a"))
        engine.register("b", record("b"))
        engine.cancel("a")

        states = await engine.hydrate_all()

        assert record.calls == ["b"]
        assert states == {"a": CANCELLED, "b": HYDRATED}

    @pytest.mark.asyncio
    async def test_unknown_unit(self):
        engine, _ = make_engine()
        with pytest.raises(HydrationError):
            await engine.hydrate_block("missing")


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_unit_ignores_signals(self):
        engine, signals = make_engine()
        record = Recorder()
        engine.register("a", record("a"))

        assert engine.cancel("a") is True
        signals.make_visible("a")
        await engine.settle()

        assert record.calls == []
        assert engine.unit("a").state == CANCELLED
        assert signals.subscriber_count() == 0

    @pytest.mark.asyncio
    async def test_queued_signal_discarded_at_drain(self):
        engine, signals = make_engine()
        record = Recorder()
        engine.register("a", record("a"))

        signals.make_visible("a")
        engine.cancel("a")
        await engine.settle()

        assert record.calls == []

    @pytest.mark.asyncio
    async def test_cancel_after_hydration_is_refused(self):
        engine, _ = make_engine()
        engine.register("a", Recorder()("a"))
        await engine.hydrate_block("a")
        assert engine.cancel("a") is False
        assert engine.unit("a").state == HYDRATED

    @pytest.mark.asyncio
    async def test_destroy_cancels_pending_units(self):
        engine, signals = make_engine("idle", idle_timeout=0.01)
        record = Recorder()
        engine.register("a", record("a"))
        engine.register("b", record("b"))

        engine.destroy()
        await asyncio.sleep(0.05)

        assert record.calls == []
        assert set(engine.states().values()) == {CANCELLED}


# ============================================================================
# Scanning rendered markup
# ============================================================================


class TestScan:
    @pytest.mark.asyncio
    async def test_scan_engine_output(self, ctx):
        blocks = [
            {"blockName": "core/paragraph", "innerContent": ["<p>a</p>"]},
            {"blockName": "core/image", "innerContent": ['<figure><img src="/a.png"></figure>']},
        ]
        html = convert_blocks(blocks, css_framework="none", hydration_markers=True, context=ctx)
        engine, signals = make_engine(priority_blocks=["core/image"])
        record = Recorder()

        units = engine.scan(html, lambda unit_id, attrs: record(unit_id))
        await engine.settle()

        assert [u.id for u in units] == ["block-0", "block-1"]
        assert engine.unit("block-0").block_name == "core/paragraph"
        assert record.calls == ["block-1"]

        signals.make_visible("block-0")
        await engine.settle()
        assert record.calls == ["block-1", "block-0"]

    @pytest.mark.asyncio
    async def test_scan_reads_strategy_and_priority(self):
        markup = (
            '<div data-block-id="x" data-hydrate="immediate" data-hydrate-priority="2"></div>'
            '<div data-block-id="y" data-hydrate="immediate" data-hydrate-priority="7"></div>'
        )
        engine, _ = make_engine()
        record = Recorder()
        engine.scan(markup, lambda unit_id, attrs: record(unit_id))
        await engine.settle()
        assert record.calls == ["y", "x"]

    @pytest.mark.asyncio
    async def test_scan_limited_to_root(self):
        markup = (
            '<header data-block-id="outside"></header>'
            '<main id="app"><section data-block-id="inside"><p>x</p></section></main>'
        )
        engine, _ = make_engine(root_selector="#app")
        units = engine.scan(markup, lambda unit_id, attrs: Recorder()(unit_id))
        assert [u.id for u in units] == ["inside"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("selector", ["main", ".content", "[data-root]", '[data-root="page"]'])
    async def test_root_selector_forms(self, selector):
        markup = '<p data-block-id="skip"></p><main class="wrap content" data-root="page"><p data-block-id="in"></p></main>'
        engine, _ = make_engine(root_selector=selector)
        units = engine.scan(markup, lambda unit_id, attrs: Recorder()(unit_id))
        assert [u.id for u in units] == ["in"]

    @pytest.mark.asyncio
    async def test_missing_root_registers_nothing(self):
        engine, _ = make_engine(root_selector="#nope")
        assert engine.scan('<p data-block-id="a"></p>', lambda unit_id, attrs: Recorder()(unit_id)) == []

    @pytest.mark.asyncio
    async def test_rescan_skips_known_units(self):
        markup = '<p data-block-id="a"></p>'
        engine, _ = make_engine()
        engine.scan(markup, lambda unit_id, attrs: Recorder()(unit_id))
        assert engine.scan(markup, lambda unit_id, attrs: Recorder()(unit_id)) == []
