"""
blockhtml Kernel -- Conversion Context

Owns the two registries a conversion reads. Build one at startup, register
frameworks and plugins on it, and pass it into every call. The module-level
helpers act on a process-wide default context for the convenience API.

Registration and conversion are not meant to interleave across threads:
configure once, then convert concurrently.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from blockhtml.kernel.class_maps import ClassMap, ClassMapRegistry
from blockhtml.kernel.transformers import TransformerRegistry


@dataclass
class ConversionContext:
    class_maps: ClassMapRegistry = field(default_factory=ClassMapRegistry)
    transformers: TransformerRegistry = field(default_factory=TransformerRegistry)

    def register_css_framework(self, framework_id: str, class_map: ClassMap) -> None:
        self.class_maps.register(framework_id, class_map)

    def register_block_handler(self, block_name: str, transformer: Any) -> None:
        self.transformers.register_block_handler(block_name, transformer)

    def register_plugin(self, plugin: Any) -> None:
        self.transformers.register_plugin(plugin, self.class_maps)


default_context = ConversionContext()


def register_css_framework(framework_id: str, class_map: ClassMap) -> None:
    """Register a CSS framework class map on the default context (overwrites)."""
    default_context.register_css_framework(framework_id, class_map)


def get_css_framework(framework_id: str) -> ClassMap | None:
    return default_context.class_maps.get(framework_id)


def register_block_handler(block_name: str, transformer: Any) -> None:
    """Register a handler for one block name on the default context (last write wins)."""
    default_context.register_block_handler(block_name, transformer)


def register_plugin(plugin: Any) -> None:
    """Run a plugin initializer against the default context."""
    default_context.register_plugin(plugin)
