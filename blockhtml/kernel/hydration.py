"""
blockhtml Kernel -- Hydration Engine

Schedules activation of already-rendered islands (top-level blocks carrying
data-block-id). Each island is one HydrationUnit:

  pending -> eligible -> activating -> hydrated | failed
  pending | eligible -> cancelled

Eligibility comes from the unit's strategy:
  immediate    -- at registration
  viewport     -- first visibility signal for the anchor
  interaction  -- first interaction on the anchor or one of its proxies
  idle         -- idle signal, or idle_timeout seconds, whichever comes first

Signals are queued and drained once per loop tick. A drain starts eligible
units by priority (higher first), then registration order. The state is
checked before every activation, so a unit activates at most once and
signals for cancelled units are dropped.

Environment signals (visibility, interaction, idle) come from a SignalSource.
SyntheticSignals drives them by hand, for tests and headless use.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import re
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol

from blockhtml.config import settings
from blockhtml.kernel.markup import START_TAG_RE, element_span, tag_attributes
from blockhtml.kernel.types import HydrationError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

STRATEGIES: set[str] = {"immediate", "viewport", "interaction", "idle"}

PENDING = "pending"
ELIGIBLE = "eligible"
ACTIVATING = "activating"
HYDRATED = "hydrated"
FAILED = "failed"
CANCELLED = "cancelled"

TERMINAL_STATES: set[str] = {HYDRATED, FAILED, CANCELLED}

INTERACTION_EVENTS: tuple[str, ...] = ("click", "focusin", "pointerenter", "touchstart", "keydown")

Unsubscribe = Callable[[], None]
Activation = Callable[[], Any]  # may return an awaitable


# ---------------------------------------------------------------------------
# Signal sources
# ---------------------------------------------------------------------------


class SignalSource(Protocol):
    """Environment capability the engine subscribes to. Each call returns an unsubscribe callable."""

    def subscribe_visibility(
        self, anchor_id: str, callback: Callable[[], None], *, threshold: float = 0.0
    ) -> Unsubscribe: ...

    def subscribe_interaction(
        self, anchor_id: str, callback: Callable[[], None], *, events: Iterable[str] = INTERACTION_EVENTS
    ) -> Unsubscribe: ...

    def subscribe_idle(self, callback: Callable[[], None]) -> Unsubscribe: ...


@dataclass(eq=False)
class _Subscription:
    callback: Callable[[], None]
    events: frozenset[str] = frozenset()


class SyntheticSignals:
    """A SignalSource fired by hand."""

    def __init__(self) -> None:
        self._visibility: dict[str, list[_Subscription]] = {}
        self._interaction: dict[str, list[_Subscription]] = {}
        self._idle: list[_Subscription] = []

    @staticmethod
    def _unsubscriber(bucket: list[_Subscription], sub: _Subscription) -> Unsubscribe:
        def unsubscribe() -> None:
            if sub in bucket:
                bucket.remove(sub)

        return unsubscribe

    def subscribe_visibility(
        self, anchor_id: str, callback: Callable[[], None], *, threshold: float = 0.0
    ) -> Unsubscribe:
        sub = _Subscription(callback)
        bucket = self._visibility.setdefault(anchor_id, [])
        bucket.append(sub)
        return self._unsubscriber(bucket, sub)

    def subscribe_interaction(
        self, anchor_id: str, callback: Callable[[], None], *, events: Iterable[str] = INTERACTION_EVENTS
    ) -> Unsubscribe:
        sub = _Subscription(callback, frozenset(events))
        bucket = self._interaction.setdefault(anchor_id, [])
        bucket.append(sub)
        return self._unsubscriber(bucket, sub)

    def subscribe_idle(self, callback: Callable[[], None]) -> Unsubscribe:
        sub = _Subscription(callback)
        self._idle.append(sub)
        return self._unsubscriber(self._idle, sub)

    # -- firing --

    def make_visible(self, *anchor_ids: str) -> None:
        for anchor_id in anchor_ids:
            for sub in list(self._visibility.get(anchor_id, [])):
                sub.callback()

    def interact(self, anchor_id: str, event: str = "click") -> None:
        for sub in list(self._interaction.get(anchor_id, [])):
            if event in sub.events:
                sub.callback()

    def go_idle(self) -> None:
        for sub in list(self._idle):
            sub.callback()

    def subscriber_count(self) -> int:
        return (
            sum(len(b) for b in self._visibility.values())
            + sum(len(b) for b in self._interaction.values())
            + len(self._idle)
        )


# ---------------------------------------------------------------------------
# Units
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class HydrationUnit:
    """One island tracked by the engine."""

    id: str
    strategy: str
    priority: int
    activate: Activation
    block_name: str | None = None
    proxies: tuple[str, ...] = ()
    state: str = PENDING
    error: BaseException | None = None
    sequence: int = 0
    unsubscribers: list[Unsubscribe] = field(default_factory=list)
    finished: asyncio.Event = field(default_factory=asyncio.Event)
    task: asyncio.Task | None = None

    @property
    def terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "strategy": self.strategy,
            "priority": self.priority,
            "block_name": self.block_name,
            "state": self.state,
            "error": repr(self.error) if self.error else None,
        }


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class HydrationEngine:
    """
    Per-page scheduler of island activations. Runs on one asyncio loop;
    register, scan and the signal callbacks must be called from it.
    """

    def __init__(
        self,
        strategy: str | None = None,
        root_selector: str | None = None,
        priority_blocks: Iterable[str] | None = None,
        *,
        signals: SignalSource | None = None,
        idle_timeout: float | None = None,
        visibility_threshold: float = 0.0,
        interaction_events: Iterable[str] = INTERACTION_EVENTS,
    ) -> None:
        self.strategy = strategy or settings.HYDRATION_STRATEGY
        if self.strategy not in STRATEGIES:
            raise HydrationError(f"Unknown hydration strategy: {self.strategy!r}")
        self.root_selector = root_selector
        self.priority_blocks: set[str] = set(priority_blocks or ())
        self.signals: SignalSource = signals if signals is not None else SyntheticSignals()
        self.idle_timeout = settings.IDLE_TIMEOUT if idle_timeout is None else idle_timeout
        self.visibility_threshold = visibility_threshold
        self.interaction_events = tuple(interaction_events)

        self.activation_order: list[str] = []
        self._units: dict[str, HydrationUnit] = {}
        self._queue: list[HydrationUnit] = []
        self._drain_handle: asyncio.Handle | None = None
        self._sequence = 0

    # -- registration --

    def register(
        self,
        unit_id: str,
        activate: Activation,
        *,
        strategy: str | None = None,
        priority: int = 0,
        block_name: str | None = None,
        proxies: Iterable[str] = (),
    ) -> HydrationUnit:
        """Track an island and subscribe to the signals its strategy needs."""
        if unit_id in self._units:
            raise HydrationError(f"Hydration unit already registered: {unit_id!r}")
        strategy = strategy or self.strategy
        if strategy not in STRATEGIES:
            raise HydrationError(f"Unknown hydration strategy: {strategy!r}")
        if block_name is not None and block_name in self.priority_blocks:
            strategy = "immediate"
            priority += settings.PRIORITY_BOOST

        self._sequence += 1
        unit = HydrationUnit(
            id=unit_id,
            strategy=strategy,
            priority=priority,
            activate=activate,
            block_name=block_name,
            proxies=tuple(proxies),
            sequence=self._sequence,
        )
        self._units[unit_id] = unit
        self._arm(unit)
        logger.debug("hydration: registered %s (%s, priority %d)", unit_id, strategy, priority)
        return unit

    def _arm(self, unit: HydrationUnit) -> None:
        def signal() -> None:
            self._signal(unit)

        if unit.strategy == "immediate":
            self._signal(unit)
        elif unit.strategy == "viewport":
            unit.unsubscribers.append(
                self.signals.subscribe_visibility(unit.id, signal, threshold=self.visibility_threshold)
            )
        elif unit.strategy == "interaction":
            for anchor in (unit.id, *unit.proxies):
                unit.unsubscribers.append(
                    self.signals.subscribe_interaction(anchor, signal, events=self.interaction_events)
                )
        elif unit.strategy == "idle":
            unit.unsubscribers.append(self.signals.subscribe_idle(signal))
            # Environments without idle callbacks still hydrate after the timeout
            handle = asyncio.get_running_loop().call_later(self.idle_timeout, signal)
            unit.unsubscribers.append(handle.cancel)

    def scan(
        self,
        markup: str,
        activate_factory: Callable[[str, dict[str, str]], Activation],
    ) -> list[HydrationUnit]:
        """
        Register every element carrying data-block-id inside the root element.

        data-hydrate overrides the strategy, data-hydrate-priority the
        priority. activate_factory(unit_id, attributes) builds the callback.
        Ids that are already registered are skipped.
        """
        region = self._root_region(markup)
        if region is None:
            logger.warning("hydration: root %r not found in markup", self.root_selector)
            return []

        units = []
        for m in START_TAG_RE.finditer(region):
            attrs = tag_attributes(m.group(2) or "")
            unit_id = attrs.get("data-block-id")
            if not unit_id or unit_id in self._units:
                continue
            strategy = attrs.get("data-hydrate") or None
            if strategy is not None and strategy not in STRATEGIES:
                logger.warning("hydration: %s has unknown strategy %r, using %s", unit_id, strategy, self.strategy)
                strategy = None
            units.append(
                self.register(
                    unit_id,
                    activate_factory(unit_id, attrs),
                    strategy=strategy,
                    priority=_int_attr(attrs.get("data-hydrate-priority")),
                    block_name=attrs.get("data-block-name"),
                )
            )
        return units

    def _root_region(self, markup: str) -> str | None:
        if not self.root_selector:
            return markup
        matcher = _selector_matcher(self.root_selector)
        for m in START_TAG_RE.finditer(markup):
            if matcher(m.group(1).lower(), tag_attributes(m.group(2) or "")):
                span = element_span(markup, m.start())
                return markup[span.start_tag_end:span.end] if span else None
        return None

    # -- signals and draining --

    def _signal(self, unit: HydrationUnit) -> None:
        if unit.state != PENDING:
            return
        unit.state = ELIGIBLE
        self._queue.append(unit)
        if self._drain_handle is None:
            self._drain_handle = asyncio.get_running_loop().call_soon(self._drain)

    def _drain(self) -> None:
        self._drain_handle = None
        queued = sorted(
            (u for u in self._queue if u.state == ELIGIBLE),
            key=lambda u: (-u.priority, u.sequence),
        )
        self._queue.clear()
        for unit in queued:
            self._start(unit)

    def _start(self, unit: HydrationUnit) -> None:
        if unit.state != ELIGIBLE:
            return
        unit.state = ACTIVATING
        self._unsubscribe(unit)
        self.activation_order.append(unit.id)
        try:
            result = unit.activate()
        except Exception as e:
            self._fail(unit, e)
            return
        if inspect.isawaitable(result):
            unit.task = asyncio.get_running_loop().create_task(self._finish(unit, result))
        else:
            self._succeed(unit)

    async def _finish(self, unit: HydrationUnit, pending: Awaitable[Any]) -> None:
        try:
            await pending
        except asyncio.CancelledError as e:
            self._fail(unit, e)
            raise
        except Exception as e:
            self._fail(unit, e)
        else:
            self._succeed(unit)

    def _succeed(self, unit: HydrationUnit) -> None:
        unit.state = HYDRATED
        unit.finished.set()
        logger.debug("hydration: %s hydrated", unit.id)

    def _fail(self, unit: HydrationUnit, error: BaseException) -> None:
        unit.state = FAILED
        unit.error = error
        unit.finished.set()
        logger.exception("hydration: activation of %s failed", unit.id, exc_info=error)

    @staticmethod
    def _unsubscribe(unit: HydrationUnit) -> None:
        unsubscribers, unit.unsubscribers = unit.unsubscribers, []
        for unsubscribe in unsubscribers:
            unsubscribe()

    # -- forcing --

    def _force(self, unit: HydrationUnit) -> None:
        if unit.state == PENDING:
            unit.state = ELIGIBLE
        self._start(unit)

    async def hydrate_block(self, unit_id: str) -> str:
        """Hydrate one unit now, bypassing its strategy. Returns its final state."""
        unit = self._get(unit_id)
        if not unit.terminal:
            self._force(unit)
            await unit.finished.wait()
        return unit.state

    async def hydrate_all(self) -> dict[str, str]:
        """Hydrate every pending unit in priority order and wait for all activations."""
        waiting = sorted(
            (u for u in self._units.values() if not u.terminal),
            key=lambda u: (-u.priority, u.sequence),
        )
        for unit in waiting:
            self._force(unit)
        if waiting:
            await asyncio.gather(*(u.finished.wait() for u in waiting))
        return self.states()

    # -- teardown --

    def cancel(self, unit_id: str) -> bool:
        """Tear down a unit that has not started activating. False when it is too late."""
        unit = self._get(unit_id)
        if unit.state not in (PENDING, ELIGIBLE):
            return False
        unit.state = CANCELLED
        self._unsubscribe(unit)
        unit.finished.set()
        logger.debug("hydration: %s cancelled", unit_id)
        return True

    def destroy(self) -> None:
        """Cancel every unit that has not started. Activations already running finish."""
        for unit in self._units.values():
            if unit.state in (PENDING, ELIGIBLE):
                self.cancel(unit.id)
        if self._drain_handle is not None:
            self._drain_handle.cancel()
            self._drain_handle = None
        self._queue.clear()

    async def settle(self) -> None:
        """Wait until queued signals are drained and running activations have finished."""
        while True:
            await asyncio.sleep(0)
            running = [u.task for u in self._units.values() if u.task is not None and not u.task.done()]
            if running:
                await asyncio.gather(*running, return_exceptions=True)
                continue
            if self._drain_handle is None and not self._queue:
                return

    # -- observability --

    def _get(self, unit_id: str) -> HydrationUnit:
        try:
            return self._units[unit_id]
        except KeyError:
            raise HydrationError(f"Unknown hydration unit: {unit_id!r}") from None

    def unit(self, unit_id: str) -> HydrationUnit:
        return self._get(unit_id)

    @property
    def units(self) -> list[HydrationUnit]:
        return list(self._units.values())

    def states(self) -> dict[str, str]:
        return {unit_id: unit.state for unit_id, unit in self._units.items()}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_ATTR_SELECTOR_RE = re.compile(r"^\[\s*([^\s=\]]+)\s*(?:=\s*[\"']?([^\"'\]]*)[\"']?\s*)?\]$")


def _selector_matcher(selector: str) -> Callable[[str, dict[str, str]], bool]:
    """Match one simple selector: #id, .class, [attr], [attr=value] or a tag name."""
    selector = selector.strip()
    if selector.startswith("#"):
        wanted = selector[1:]
        return lambda tag, attrs: attrs.get("id") == wanted
    if selector.startswith("."):
        wanted = selector[1:]
        return lambda tag, attrs: wanted in attrs.get("class", "").split()
    m = _ATTR_SELECTOR_RE.match(selector)
    if m:
        name, value = m.group(1).lower(), m.group(2)
        if value is None:
            return lambda tag, attrs: name in attrs
        return lambda tag, attrs: attrs.get(name) == value
    wanted = selector.lower()
    return lambda tag, attrs: tag == wanted


def _int_attr(value: str | None) -> int:
    try:
        return int(value) if value else 0
    except ValueError:
        return 0
