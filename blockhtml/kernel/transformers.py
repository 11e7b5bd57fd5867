"""
blockhtml Kernel -- Block Transformer Registry

Pluggable per-block markup producers. A transformer receives the block and a
TransformContext and returns markup, or None to pass the block on to the next
transformer and finally to the built-in renderer.

A transformer may also be a mustache template string; it is rendered with
chevron against the block attributes plus `name`, `classes`, `children` and
`inner_html`. Use triple braces ({{{children}}}) for markup.

Registration is last-write-wins per block name. Nothing is ever removed --
callers own the lifetime by registering once at startup.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

import chevron

from blockhtml.kernel.blocks import Block
from blockhtml.kernel.types import ConversionOptions

if TYPE_CHECKING:
    from blockhtml.kernel.class_maps import ClassMap, ClassMapRegistry

logger = logging.getLogger(__name__)

ANY_BLOCK = "*"


@dataclass
class TransformContext:
    """What a transformer sees besides the block itself."""

    options: ConversionOptions
    role: str
    classes: list[str]
    depth: int
    render_children: Callable[[], list[str]]

    @property
    def class_string(self) -> str:
        return " ".join(self.classes)

    def children_html(self) -> str:
        return "".join(self.render_children())


Transformer = Callable[[Block, TransformContext], str | None]


class TemplateTransformer:
    """Renders a mustache template for the block."""

    def __init__(self, template: str) -> None:
        self.template = template

    def __call__(self, block: Block, ctx: TransformContext) -> str:
        data: dict[str, Any] = dict(block.attributes)
        data.update(
            {
                "name": block.name or "",
                "classes": ctx.class_string,
                "children": ctx.children_html(),
                "inner_html": block.inner_html,
            }
        )
        return chevron.render(self.template, data)

    def __repr__(self) -> str:
        return f"TemplateTransformer({self.template[:40]!r})"


@dataclass
class TransformerEntry:
    """
    One link in the transformer chain.
    block_name None (or "*") claims every block; the transform may still decline.
    """

    block_name: str | None
    transform: Transformer
    source: str = "call"

    def matches(self, block: Block) -> bool:
        return self.block_name in (None, ANY_BLOCK) or self.block_name == block.name

    def __call__(self, block: Block, ctx: TransformContext) -> str | None:
        return self.transform(block, ctx)


def as_transformer(transformer: Any) -> Transformer:
    """Accept a callable, a template string, or an object with a transform() method."""
    if isinstance(transformer, str):
        return TemplateTransformer(transformer)
    if callable(transformer):
        return transformer
    method = getattr(transformer, "transform", None)
    if callable(method):
        can_handle = getattr(transformer, "can_handle", None)
        if callable(can_handle):
            return lambda block, ctx: method(block, ctx) if can_handle(block) else None
        return method
    raise TypeError(f"Not a block transformer: {transformer!r}")


def as_entries(items: Iterable[Any] | dict[str, Any] | None, *, source: str = "call") -> list[TransformerEntry]:
    """
    Normalize call-scoped transformers.

    Accepts TransformerEntry objects, (block_name, transformer) pairs, a
    {block_name: transformer} mapping, objects exposing block_name + transform,
    or bare callables that see every block.
    """
    if not items:
        return []
    if isinstance(items, dict):
        return [TransformerEntry(name, as_transformer(t), source) for name, t in items.items()]

    entries: list[TransformerEntry] = []
    for item in items:
        if isinstance(item, TransformerEntry):
            entries.append(item)
        elif isinstance(item, tuple) and len(item) == 2:
            entries.append(TransformerEntry(item[0], as_transformer(item[1]), source))
        elif isinstance(item, dict):
            entries.extend(as_entries(item, source=source))
        else:
            block_name = getattr(item, "block_name", None)
            entries.append(TransformerEntry(block_name, as_transformer(item), source))
    return entries


# ---------------------------------------------------------------------------
# Plugins
# ---------------------------------------------------------------------------


class PluginHandle:
    """The only surface a plugin initializer gets."""

    def __init__(self, transformers: TransformerRegistry, class_maps: ClassMapRegistry) -> None:
        self._transformers = transformers
        self._class_maps = class_maps

    def register_block_handler(self, block_name: str, transformer: Any) -> None:
        self._transformers.register_block_handler(block_name, transformer)

    def register_css_framework(self, framework_id: str, class_map: ClassMap) -> None:
        self._class_maps.register(framework_id, class_map)


class Plugin(Protocol):
    name: str

    def setup(self, handle: PluginHandle) -> None: ...


def _plugin_name(plugin: Any) -> str:
    return getattr(plugin, "name", None) or getattr(plugin, "__name__", None) or type(plugin).__name__


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TransformerRegistry:
    """Ordered global handlers, one per exact block name."""

    def __init__(self) -> None:
        self._handlers: dict[str, TransformerEntry] = {}
        self._plugins: list[str] = []

    def register_block_handler(self, block_name: str, transformer: Any) -> None:
        """Associate a transformer with a block name. Re-registering replaces it in place."""
        if not block_name:
            raise ValueError("block_name is required")
        if block_name in self._handlers:
            logger.debug("transformers: replacing handler for %s", block_name)
        self._handlers[block_name] = TransformerEntry(block_name, as_transformer(transformer), source="global")

    def handler_for(self, block_name: str) -> TransformerEntry | None:
        return self._handlers.get(block_name)

    @property
    def block_names(self) -> list[str]:
        return list(self._handlers)

    @property
    def plugins(self) -> list[str]:
        return list(self._plugins)

    def register_plugin(self, plugin: Any, class_maps: ClassMapRegistry) -> None:
        """Run a plugin's initializer against a capability handle."""
        handle = PluginHandle(self, class_maps)
        setup = getattr(plugin, "setup", None)
        if callable(setup):
            setup(handle)
        elif callable(plugin):
            plugin(handle)
        else:
            raise TypeError(f"Plugin must be callable or define setup(): {plugin!r}")
        name = _plugin_name(plugin)
        self._plugins.append(name)
        logger.debug("transformers: registered plugin %s", name)

    def entries_for(self, block: Block, call_scoped: Iterable[TransformerEntry] = ()) -> Iterator[TransformerEntry]:
        """Matching entries: call-scoped first, then global, each at most once."""
        seen: set[int] = set()
        for entry in call_scoped:
            if entry.matches(block) and id(entry) not in seen:
                seen.add(id(entry))
                yield entry
        for entry in self._handlers.values():
            if entry.matches(block) and id(entry) not in seen:
                seen.add(id(entry))
                yield entry
