"""
blockhtml Kernel -- Conversion Engine

(block tree | block list | {"rendered": html}, options) -> HTML string or StructuredNode list

Pure apart from registry reads. Same input + same registries -> same output.

Per block, markup comes from the first transformer that claims it
(call-scoped entries, then globally registered ones) or from the built-in
handler, which splices child markup into the block's fragments and merges
the resolved framework classes into its top-level tag.

Content handling:
  raw      -- every block is rendered and classified, recursively
  hybrid   -- top-level blocks are classified, their children pass through as rendered
  rendered -- markup passes through untouched
"""

from __future__ import annotations

import logging
from typing import Any

from blockhtml.kernel.block_handlers import extra_classes, infer_role, interleave, role_for, synthesize
from blockhtml.kernel.blocks import Block, parse_blocks
from blockhtml.kernel.context import ConversionContext, default_context
from blockhtml.kernel.markup import add_attributes, inject_classes, tag_classes, top_level_elements
from blockhtml.kernel.ssr import SSROptimizer
from blockhtml.kernel.transformers import TransformContext, TransformerEntry, as_entries
from blockhtml.kernel.types import (
    MALFORMED_INTERLEAVING,
    TRANSFORMER_ERROR,
    UNKNOWN_FRAMEWORK,
    ConversionOptions,
    ConversionResult,
    InvalidInputError,
    StructuredNode,
    TransformerError,
    Warning,
)

logger = logging.getLogger(__name__)

FREEFORM_NAME = "core/freeform"

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def convert_blocks(
    input: Any,
    options: ConversionOptions | dict[str, Any] | None = None,
    *,
    context: ConversionContext | None = None,
    **overrides: Any,
) -> str | list[StructuredNode]:
    """
    Convert blocks (or pre-rendered content) to HTML or structured nodes.

    Keyword overrides are applied on top of `options`, e.g.
    convert_blocks(blocks, css_framework="tailwind").
    """
    return BlockConverter(context).convert(input, options, **overrides).output


def resolve_options(options: ConversionOptions | dict[str, Any] | None, **overrides: Any) -> ConversionOptions:
    if options is None:
        opts = ConversionOptions()
    elif isinstance(options, ConversionOptions):
        opts = options
    elif isinstance(options, dict):
        opts = ConversionOptions.from_dict(options)
    else:
        raise InvalidInputError(f"Unsupported options: {type(options).__name__}")
    return opts.with_overrides(**overrides) if overrides else opts


def rendered_content(input: Any) -> str | None:
    """
    Return the HTML of a {"rendered": ...} input (or a REST-style post with
    content.rendered), None for anything else.
    """
    if not isinstance(input, dict) or "blockName" in input or "name" in input:
        return None
    rendered = input.get("rendered")
    if rendered is None and isinstance(input.get("content"), dict):
        rendered = input["content"].get("rendered")
    if rendered is None:
        return None
    if not isinstance(rendered, str):
        raise InvalidInputError("rendered content must be a string")
    return rendered


class BlockConverter:
    """Runs conversions against one context's registries."""

    def __init__(self, context: ConversionContext | None = None) -> None:
        self.context = context or default_context

    def convert(
        self,
        input: Any,
        options: ConversionOptions | dict[str, Any] | None = None,
        *,
        index_offset: int = 0,
        **overrides: Any,
    ) -> ConversionResult:
        """
        index_offset shifts the top-level block ids used for hydration
        markers, for callers converting one slice of a larger array.
        """
        opts = resolve_options(options, **overrides)
        run = _ConversionRun(self.context, opts, index_offset=index_offset)

        rendered = rendered_content(input)
        if rendered is not None:
            nodes = [run.convert_rendered(rendered)]
        else:
            if input is None:
                raise InvalidInputError("No blocks given")
            blocks = parse_blocks(input)
            nodes = [run.convert_block(block, depth=0, index=i) for i, block in enumerate(blocks)]

        output = run.finish(nodes)
        return ConversionResult(output=output, warnings=run.warnings)


# ---------------------------------------------------------------------------
# One conversion call
# ---------------------------------------------------------------------------


class _ConversionRun:
    """Per-call state: options, call-scoped transformers, collected warnings."""

    def __init__(self, context: ConversionContext, options: ConversionOptions, index_offset: int = 0) -> None:
        self.context = context
        self.options = options
        self.index_offset = index_offset
        self.warnings: list[Warning] = []
        self.call_entries: list[TransformerEntry] = as_entries(options.block_transformers)
        self.framework = options.css_framework
        if self.framework not in context.class_maps:
            self.warn(
                UNKNOWN_FRAMEWORK,
                f"Unknown CSS framework {self.framework!r}; using default class names",
                framework=self.framework,
            )

    # -- diagnostics --

    def warn(self, code: str, message: str, **details: Any) -> None:
        warning = Warning(code=code, message=message, details=details or None)
        self.warnings.append(warning)
        logger.warning("renderer: %s", message)
        if self.options.on_warning is not None:
            try:
                self.options.on_warning(warning)
            except Exception:
                logger.exception("renderer: on_warning callback failed")

    # -- classes --

    def classes_for(self, block: Block, role: str, mode: str) -> list[str]:
        if mode == "rendered":
            return []
        classes = self.context.class_maps.classes_for(
            self.framework,
            role,
            block.attributes,
            custom_map=self.options.custom_class_map,
        )
        return classes

    # -- blocks --

    def convert_block(self, block: Block, depth: int, index: int, mode: str | None = None) -> StructuredNode:
        mode = mode or self.options.content_handling
        # hybrid: only the top-level tag is reclassified, children pass through
        child_mode = "rendered" if mode in ("hybrid", "rendered") else mode
        role = role_for(block)
        classes = self.classes_for(block, role, mode)

        child_nodes: list[StructuredNode] | None = None

        def render_children() -> list[str]:
            nonlocal child_nodes
            if child_nodes is None:
                child_nodes = [
                    self.convert_block(child, depth + 1, i, child_mode) for i, child in enumerate(block.children)
                ]
            return [node.markup for node in child_nodes]

        ctx = TransformContext(
            options=self.options,
            role=role,
            classes=classes,
            depth=depth,
            render_children=render_children,
        )

        markup = self._apply_transformers(block, ctx)
        if markup is None:
            markup = self._builtin(block, classes, render_children, mode)

        if depth == 0 and self.options.hydration_markers:
            markup = add_attributes(
                markup,
                {"data-block-id": f"block-{self.index_offset + index}", "data-block-name": block.name or FREEFORM_NAME},
            )

        if self.options.output_format == "nodes":
            render_children()

        return StructuredNode(
            name=block.name,
            markup=markup,
            classes=classes,
            role=role,
            depth=depth,
            attributes=dict(block.attributes),
            children=child_nodes or [],
        )

    def _apply_transformers(self, block: Block, ctx: TransformContext) -> str | None:
        for entry in self.context.transformers.entries_for(block, self.call_entries):
            try:
                result = entry(block, ctx)
            except Exception as e:
                error = TransformerError(block.name, e)
                logger.debug("renderer: transformer failure", exc_info=True)
                self.warn(
                    TRANSFORMER_ERROR,
                    str(error),
                    block=block.name,
                    source=entry.source,
                    error=repr(e),
                )
                return None
            if result is not None:
                return str(result)
        return None

    def _builtin(self, block: Block, classes: list[str], render_children, mode: str) -> str:
        children = render_children()
        if block.fragments:
            markup, mismatch = interleave(block.fragments, children)
            if mismatch is not None:
                self.warn(
                    MALFORMED_INTERLEAVING,
                    f"{block.name or FREEFORM_NAME}: {mismatch['placeholders']} placeholder(s) "
                    f"for {mismatch['children']} child block(s)",
                    block=block.name,
                    **mismatch,
                )
        else:
            markup = synthesize(block, children)
            if mode != "rendered":
                classes = classes + [c for c in extra_classes(block) if c not in classes]
        if mode == "rendered" or not classes:
            return markup
        return inject_classes(markup, classes)

    # -- rendered content --

    def convert_rendered(self, html: str) -> StructuredNode:
        mode = self.options.content_handling
        if mode == "raw":
            raise InvalidInputError("content_handling='raw' requires a block tree, got rendered HTML only")
        if mode == "hybrid":
            html = self._classify_rendered(html)
        return StructuredNode(name=FREEFORM_NAME, markup=html, role="wrapper", depth=0)

    def _classify_rendered(self, html: str) -> str:
        """Inject framework classes into every top-level element, inferring roles from tags."""
        pieces: list[str] = []
        pos = 0
        for span in top_level_elements(html):
            element = span.slice(html)
            role, attributes = infer_role(span.tag, tag_classes(html[span.start:span.start_tag_end]))
            classes = self.context.class_maps.classes_for(
                self.framework,
                role,
                attributes,
                custom_map=self.options.custom_class_map,
            )
            pieces.append(html[pos:span.start])
            pieces.append(inject_classes(element, classes))
            pos = span.end
        pieces.append(html[pos:])
        return "".join(pieces)

    # -- output --

    def finish(self, nodes: list[StructuredNode]) -> str | list[StructuredNode]:
        ssr = self.options.ssr_options
        if self.options.output_format == "nodes":
            if ssr.enabled:
                optimizer = SSROptimizer(ssr, inject_hints=False)
                for node in nodes:
                    node.markup = optimizer.process(node.markup)
            return nodes

        html = "".join(node.markup for node in nodes)
        if ssr.enabled:
            html = SSROptimizer(ssr).process(html)
        return html
