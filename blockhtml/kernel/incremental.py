"""
blockhtml Kernel -- Incremental Renderer

Large block arrays render in two phases: an initial slice converted
synchronously (returned right away), then the rest in fixed-size batches on
a background asyncio task with a delay between batches.

Cancellation is cooperative: the token is checked before each batch, so a
batch that already started finishes, and no later batch runs. Dropping the
returned handle cancels too -- the background task holds only the shared
state, never the handle.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections.abc import Callable
from typing import Any

from blockhtml.kernel.blocks import Block, parse_blocks
from blockhtml.kernel.context import ConversionContext
from blockhtml.kernel.renderer import BlockConverter, resolve_options
from blockhtml.kernel.ssr import SSROptimizer
from blockhtml.kernel.types import ConversionOptions, IncrementalOptions, SSROptions, Warning

logger = logging.getLogger(__name__)

# Strong references so pending batch tasks are not garbage collected mid-run.
_BACKGROUND_TASKS: set[asyncio.Task] = set()


class CancellationToken:
    """Set once; observed by the batch loop before each batch."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


class _RenderState:
    """Shared between the handle and the background task."""

    def __init__(self, total: int) -> None:
        self.total = total
        self.rendered = 0
        self.parts: list[str] = []
        self.warnings: list[Warning] = []
        self.completed = False
        self.cancelled = False
        self.error: BaseException | None = None
        self.done = asyncio.Event()

    @property
    def html(self) -> str:
        return "".join(self.parts)

    @property
    def progress(self) -> float:
        return 1.0 if self.total == 0 else self.rendered / self.total


class IncrementalRender:
    """Handle for one incremental render. Keep it alive until completion."""

    def __init__(self, initial_html: str, state: _RenderState, token: CancellationToken) -> None:
        self.initial_html = initial_html
        self.token = token
        self._state = state
        self._finalizer = weakref.finalize(self, token.cancel)

    @property
    def html(self) -> str:
        """Everything rendered so far."""
        return self._state.html

    @property
    def progress(self) -> float:
        return self._state.progress

    @property
    def warnings(self) -> list[Warning]:
        return list(self._state.warnings)

    @property
    def completed(self) -> bool:
        return self._state.completed

    @property
    def cancelled(self) -> bool:
        return self._state.cancelled

    @property
    def done(self) -> bool:
        return self._state.done.is_set()

    def cancel(self) -> None:
        self.token.cancel()

    async def wait(self) -> str:
        """Wait for completion (or cancellation) and return the markup rendered."""
        await self._state.done.wait()
        if self._state.error is not None:
            raise self._state.error
        return self._state.html


def _invoke(callback: Callable[..., Any] | None, *args: Any) -> None:
    if callback is None:
        return
    try:
        callback(*args)
    except Exception:
        logger.exception("incremental: callback %r failed", callback)


def render_incrementally(
    blocks: Any,
    options: ConversionOptions | dict[str, Any] | None = None,
    *,
    context: ConversionContext | None = None,
    **overrides: Any,
) -> IncrementalRender:
    """
    Convert the first `initial_render_count` blocks now, the rest in batches.

    Must be called with an asyncio loop running when there is anything left
    after the initial slice.
    """
    opts = resolve_options(options, **overrides)
    incremental: IncrementalOptions = opts.incremental_options
    items = parse_blocks(blocks)

    converter = BlockConverter(context)
    # SSR runs once over the stream so eager media counts span every batch
    optimizer = SSROptimizer(opts.ssr_options) if opts.ssr_options.enabled else None
    batch_options = opts.with_overrides(output_format="html", ssr_options=SSROptions())

    state = _RenderState(total=len(items))
    token = CancellationToken()

    def render(batch: list[Block]) -> str:
        result = converter.convert(batch, batch_options, index_offset=state.rendered)
        state.warnings.extend(result.warnings)
        html = result.html
        if optimizer is not None:
            html = optimizer.process(html)
        return html

    # disabled: the whole array is the initial slice
    initial_count = incremental.initial_render_count if incremental.enabled else len(items)
    initial = items[:initial_count]
    initial_html = render(initial) if initial else ""
    state.parts.append(initial_html)
    state.rendered = len(initial)
    handle = IncrementalRender(initial_html, state, token)

    rest = items[len(initial):]
    if not rest:
        state.completed = True
        state.done.set()
        _invoke(incremental.on_complete, state.html)
        return handle

    task = asyncio.get_running_loop().create_task(_render_batches(rest, incremental, token, state, render))
    _BACKGROUND_TASKS.add(task)
    task.add_done_callback(_BACKGROUND_TASKS.discard)
    logger.debug(
        "incremental: %d block(s) now, %d deferred in batches of %d",
        len(initial),
        len(rest),
        incremental.batch_size,
    )
    return handle


async def _render_batches(
    rest: list[Block],
    incremental: IncrementalOptions,
    token: CancellationToken,
    state: _RenderState,
    render: Callable[[list[Block]], str],
) -> None:
    try:
        index = 0
        for start in range(0, len(rest), incremental.batch_size):
            await asyncio.sleep(incremental.render_delay)
            if token.cancelled:
                state.cancelled = True
                logger.debug("incremental: cancelled after %d batch(es)", index)
                return
            batch = rest[start:start + incremental.batch_size]
            html = render(batch)
            state.parts.append(html)
            state.rendered += len(batch)
            index += 1
            _invoke(incremental.on_batch, html, index)
            _invoke(incremental.on_progress, state.progress)

        state.completed = True
        _invoke(incremental.on_complete, state.html)
    except Exception as e:
        state.error = e
        logger.exception("incremental: batch rendering failed")
    finally:
        state.done.set()
