"""
blockhtml Kernel -- block trees to framework-shaped HTML.

Components:
  renderer     -- (blocks, options) -> HTML or StructuredNode list
  class_maps   -- framework id + role + variant -> class names
  transformers -- per-block overrides, global and call-scoped, plus plugins
  ssr          -- post-pass over produced markup (lazy media, styles, hints)
  incremental  -- initial slice now, the rest in cancellable batches
  hydration    -- client-side activation scheduling for rendered islands
"""

from blockhtml.kernel.blocks import Block, parse_blocks
from blockhtml.kernel.context import (
    ConversionContext,
    default_context,
    get_css_framework,
    register_block_handler,
    register_css_framework,
    register_plugin,
)
from blockhtml.kernel.hydration import HydrationEngine, HydrationUnit, SignalSource, SyntheticSignals
from blockhtml.kernel.incremental import IncrementalRender, render_incrementally
from blockhtml.kernel.renderer import BlockConverter, convert_blocks
from blockhtml.kernel.ssr import optimize
from blockhtml.kernel.transformers import TemplateTransformer, TransformContext
from blockhtml.kernel.types import (
    BlockHTMLError,
    ConversionOptions,
    ConversionResult,
    HydrationError,
    IncrementalOptions,
    InvalidInputError,
    SSROptions,
    StructuredNode,
    TransformerError,
    Warning,
)

__all__ = [
    "convert_blocks",
    "BlockConverter",
    "ConversionContext",
    "default_context",
    "register_css_framework",
    "get_css_framework",
    "register_block_handler",
    "register_plugin",
    "TemplateTransformer",
    "TransformContext",
    "optimize",
    "render_incrementally",
    "IncrementalRender",
    "HydrationEngine",
    "HydrationUnit",
    "SignalSource",
    "SyntheticSignals",
    "Block",
    "parse_blocks",
    "ConversionOptions",
    "ConversionResult",
    "SSROptions",
    "IncrementalOptions",
    "StructuredNode",
    "Warning",
    "BlockHTMLError",
    "InvalidInputError",
    "TransformerError",
    "HydrationError",
]
