"""
blockhtml Kernel -- Shared Types

Data classes used across the class map registry, transformer registry,
renderer, SSR pass and incremental renderer. These are the contracts that
bind the kernel together.

Blocks themselves are pydantic models (see blocks.py) because they arrive as
editor JSON and need validation. Everything the kernel produces or is
configured with is a plain dataclass.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from typing import Any

from blockhtml.config import settings

# ---------------------------------------------------------------------------
# Enumerations (string sets, validated on construction)
# ---------------------------------------------------------------------------

OUTPUT_FORMATS: set[str] = {"html", "nodes"}

CONTENT_HANDLING_MODES: set[str] = {"raw", "rendered", "hybrid"}

OPTIMIZATION_LEVELS: set[str] = {"minimal", "balanced", "maximum"}

# Warning codes
MALFORMED_INTERLEAVING = "malformed_interleaving"
UNKNOWN_FRAMEWORK = "unknown_framework"
TRANSFORMER_ERROR = "transformer_error"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class BlockHTMLError(Exception):
    """Base class for every error raised by blockhtml."""

    pass


class InvalidInputError(BlockHTMLError, ValueError):
    """Input has the wrong shape for the requested conversion."""

    pass


class TransformerError(BlockHTMLError):
    """A block transformer raised while handling a block."""

    def __init__(self, block_name: str | None, cause: BaseException):
        super().__init__(f"Transformer for {block_name or '<freeform>'} failed: {cause!r}")
        self.block_name = block_name
        self.cause = cause


class HydrationError(BlockHTMLError):
    """Unknown hydration unit or strategy."""

    pass


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


@dataclass
class Warning:
    """A non-fatal issue encountered during conversion."""

    code: str
    message: str
    details: dict[str, Any] | None = None


WarningCallback = Callable[[Warning], None]


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SSROptions:
    """
    Server-side optimization toggles.

    Toggles left as None take their value from optimization_level.
    """

    enabled: bool = False
    optimization_level: str = "balanced"
    lazy_load_media: bool | None = None
    eager_media_count: int = field(default_factory=lambda: settings.EAGER_MEDIA_COUNT)
    preconnect: bool | None = None
    preconnect_origins: tuple[str, ...] = ()
    critical_path_only: bool | None = None
    remove_duplicate_styles: bool | None = None

    def __post_init__(self) -> None:
        if self.optimization_level not in OPTIMIZATION_LEVELS:
            raise InvalidInputError(f"Unknown optimization level: {self.optimization_level}")

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> SSROptions:
        return cls(
            enabled=d.get("enabled", False),
            optimization_level=d.get("optimizationLevel", d.get("optimization_level", "balanced")),
            lazy_load_media=d.get("lazyLoadMedia", d.get("lazy_load_media")),
            eager_media_count=d.get("eagerMediaCount", d.get("eager_media_count", settings.EAGER_MEDIA_COUNT)),
            preconnect=d.get("preconnect"),
            preconnect_origins=tuple(d.get("preconnectOrigins", d.get("preconnect_origins", ()))),
            critical_path_only=d.get("criticalPathOnly", d.get("critical_path_only")),
            remove_duplicate_styles=d.get("removeDuplicateStyles", d.get("remove_duplicate_styles")),
        )


@dataclass(frozen=True)
class IncrementalOptions:
    """Batching for large block arrays. render_delay is in seconds."""

    enabled: bool = False
    initial_render_count: int = field(default_factory=lambda: settings.INITIAL_RENDER_COUNT)
    batch_size: int = field(default_factory=lambda: settings.INCREMENTAL_BATCH_SIZE)
    render_delay: float = 0.0
    on_progress: Callable[[float], None] | None = None
    on_batch: Callable[[str, int], None] | None = None
    on_complete: Callable[[str], None] | None = None

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise InvalidInputError("batch_size must be at least 1")
        if self.initial_render_count < 0:
            raise InvalidInputError("initial_render_count must not be negative")

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> IncrementalOptions:
        return cls(
            enabled=d.get("enabled", False),
            initial_render_count=d.get("initialRenderCount", d.get("initial_render_count", settings.INITIAL_RENDER_COUNT)),
            batch_size=d.get("batchSize", d.get("batch_size", settings.INCREMENTAL_BATCH_SIZE)),
            render_delay=d.get("renderDelay", d.get("render_delay", 0.0)),
            on_progress=d.get("onProgress", d.get("on_progress")),
            on_batch=d.get("onBatch", d.get("on_batch")),
            on_complete=d.get("onComplete", d.get("on_complete")),
        )


@dataclass(frozen=True)
class ConversionOptions:
    """Immutable per-call configuration for the conversion engine."""

    output_format: str = "html"
    css_framework: str = field(default_factory=lambda: settings.CSS_FRAMEWORK)
    content_handling: str = field(default_factory=lambda: settings.CONTENT_HANDLING)
    custom_class_map: dict[str, Any] = field(default_factory=dict)
    ssr_options: SSROptions = field(default_factory=SSROptions)
    incremental_options: IncrementalOptions = field(default_factory=IncrementalOptions)
    block_transformers: Sequence[Any] = ()
    hydration_markers: bool = False
    on_warning: WarningCallback | None = None

    def __post_init__(self) -> None:
        if self.output_format not in OUTPUT_FORMATS:
            raise InvalidInputError(f"Unknown output format: {self.output_format}")
        if self.content_handling not in CONTENT_HANDLING_MODES:
            raise InvalidInputError(f"Unknown content handling mode: {self.content_handling}")

    def with_overrides(self, **overrides: Any) -> ConversionOptions:
        return replace(self, **overrides)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ConversionOptions:
        """Build options from a camelCase or snake_case mapping."""
        ssr = d.get("ssrOptions", d.get("ssr_options")) or {}
        incremental = d.get("incrementalOptions", d.get("incremental_options")) or {}
        return cls(
            output_format=d.get("outputFormat", d.get("output_format", "html")),
            css_framework=d.get("cssFramework", d.get("css_framework", settings.CSS_FRAMEWORK)),
            content_handling=d.get("contentHandling", d.get("content_handling", settings.CONTENT_HANDLING)),
            custom_class_map=d.get("customClassMap", d.get("custom_class_map")) or {},
            ssr_options=ssr if isinstance(ssr, SSROptions) else SSROptions.from_dict(ssr),
            incremental_options=(
                incremental if isinstance(incremental, IncrementalOptions) else IncrementalOptions.from_dict(incremental)
            ),
            block_transformers=tuple(d.get("blockTransformers", d.get("block_transformers", ()))),
            hydration_markers=d.get("hydrationMarkers", d.get("hydration_markers", False)),
            on_warning=d.get("onWarning", d.get("on_warning")),
        )


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class StructuredNode:
    """One converted block, annotated for framework adapters."""

    name: str | None
    markup: str
    classes: list[str] = field(default_factory=list)
    role: str = "wrapper"
    depth: int = 0
    attributes: dict[str, Any] = field(default_factory=dict)
    children: list[StructuredNode] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "markup": self.markup,
            "classes": list(self.classes),
            "role": self.role,
            "depth": self.depth,
            "attributes": self.attributes,
            "children": [c.to_dict() for c in self.children],
        }

    def walk(self):
        """Yield this node and every descendant, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass
class ConversionResult:
    """
    Result of one conversion call.
    The engine never raises for recoverable problems -- they land in warnings.
    """

    output: str | list[StructuredNode]
    warnings: list[Warning] = field(default_factory=list)

    @property
    def html(self) -> str:
        if isinstance(self.output, str):
            return self.output
        return "".join(node.markup for node in self.output)
