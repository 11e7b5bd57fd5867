"""
blockhtml Kernel -- Built-in Block Handlers

The last link of the transformer chain: role lookup for class resolution,
fragment/child interleaving, and markup synthesis for blocks that arrive
without pre-rendered fragments (built in code rather than parsed from a post).

Synthesized markup is produced from mustache templates keyed by the block
name's tail segment. Classes are not part of the templates -- the engine
injects them into the top-level tag afterwards, the same way it does for
pre-rendered fragments.
"""

from __future__ import annotations

import re
from typing import Any

import chevron

from blockhtml.kernel.blocks import Block
from blockhtml.kernel.markup import escape

# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------

BLOCK_ROLES: dict[str, str] = {
    "paragraph": "paragraph",
    "list": "list",
    "list-item": "listItem",
    "quote": "quote",
    "pullquote": "pullquote",
    "table": "table",
    "code": "code",
    "preformatted": "preformatted",
    "verse": "preformatted",
    "separator": "separator",
    "spacer": "spacer",
    "group": "group",
    "columns": "columns",
    "column": "column",
    "image": "image",
    "gallery": "gallery",
    "video": "video",
    "audio": "audio",
    "file": "file",
    "cover": "cover",
    "media-text": "mediaText",
    "button": "button",
    "buttons": "buttons",
    "embed": "embed",
}

# Tag-based role inference for pre-rendered HTML without a block tree.
TAG_ROLES: dict[str, str] = {
    "p": "paragraph",
    "ul": "list",
    "ol": "list",
    "li": "listItem",
    "blockquote": "quote",
    "table": "table",
    "figure": "image",
    "img": "image",
    "pre": "code",
    "hr": "separator",
    "video": "video",
    "audio": "audio",
    **{f"h{level}": f"heading.h{level}" for level in range(1, 7)},
}

_WP_VARIANT_CLASSES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"^has-text-align-(left|center|right|justify)$"), "align"),
    (re.compile(r"^align(left|right|center|wide|full)$"), "align"),
    (re.compile(r"^(?:is|are)-vertically-aligned-(top|center|bottom)$"), "verticalAlignment"),
]


def heading_level(attributes: dict[str, Any]) -> int:
    try:
        level = int(attributes.get("level", 2))
    except (TypeError, ValueError):
        return 2
    return min(6, max(1, level))


def role_for(block: Block) -> str:
    """Semantic role used for class lookup; unknown names map to "wrapper"."""
    category = block.category
    if category == "heading":
        return f"heading.h{heading_level(block.attributes)}"
    return BLOCK_ROLES.get(category, "wrapper")


def infer_role(tag: str, classes: list[str]) -> tuple[str, dict[str, Any]]:
    """Guess (role, variant attributes) for a rendered element from its tag and classes."""
    tag = tag.lower()
    role = TAG_ROLES.get(tag, "wrapper")
    attributes: dict[str, Any] = {}
    if tag in ("ul", "ol"):
        attributes["ordered"] = tag == "ol"
    for cls in classes:
        for pattern, attribute in _WP_VARIANT_CLASSES:
            m = pattern.match(cls)
            if m:
                attributes.setdefault(attribute, m.group(1))
    if "align" in attributes:
        attributes.setdefault("textAlign", attributes["align"])
    return role, attributes


# ---------------------------------------------------------------------------
# Interleaving
# ---------------------------------------------------------------------------

_TRAILING_CLOSE_RE = re.compile(r"</[a-zA-Z][a-zA-Z0-9:-]*\s*>\s*$")


def interleave(fragments: tuple[str | None, ...], children: list[str]) -> tuple[str, dict[str, int] | None]:
    """
    Splice child markup into fragments at each None placeholder.

    Returns (markup, mismatch). mismatch is None when placeholders and
    children line up; otherwise surplus placeholders are dropped and surplus
    children go in before the closing tag of the block's wrapper (or at the
    end when the fragments do not close an element).
    """
    parts: list[str] = []
    used = 0
    placeholders = 0
    for fragment in fragments:
        if fragment is None:
            placeholders += 1
            if used < len(children):
                parts.append(children[used])
                used += 1
            continue
        parts.append(fragment)

    markup = "".join(parts)
    if placeholders == len(children):
        return markup, None

    surplus = "".join(children[used:])
    if surplus:
        m = _TRAILING_CLOSE_RE.search(markup)
        if m:
            markup = markup[: m.start()] + surplus + markup[m.start():]
        else:
            markup += surplus
    return markup, {"placeholders": placeholders, "children": len(children)}


# ---------------------------------------------------------------------------
# Synthesis
# ---------------------------------------------------------------------------

_CAPTION = "{{#caption}}<figcaption>{{{caption}}}</figcaption>{{/caption}}"

TEMPLATES: dict[str, str] = {
    "paragraph": "<p>{{{content}}}</p>",
    "heading": "<h{{level}}{{#anchor}} id=\"{{anchor}}\"{{/anchor}}>{{{content}}}</h{{level}}>",
    "list": "<{{tag}}>{{{children}}}{{{values}}}</{{tag}}>",
    "list-item": "<li>{{{content}}}{{{children}}}</li>",
    "quote": "<blockquote>{{{children}}}{{{value}}}{{#citation}}<cite>{{{citation}}}</cite>{{/citation}}</blockquote>",
    "pullquote": (
        "<figure><blockquote><p>{{{value}}}</p>"
        "{{#citation}}<cite>{{{citation}}}</cite>{{/citation}}</blockquote></figure>"
    ),
    "code": "<pre><code>{{{content}}}</code></pre>",
    "preformatted": "<pre>{{{content}}}</pre>",
    "verse": "<pre>{{{content}}}</pre>",
    "separator": "<hr>",
    "spacer": "<div style=\"height:{{height}}\" aria-hidden=\"true\"></div>",
    "group": "<{{tagName}}>{{{children}}}</{{tagName}}>",
    "columns": "<div>{{{children}}}</div>",
    "column": "<div{{#width}} style=\"flex-basis:{{width}}\"{{/width}}>{{{children}}}</div>",
    "image": (
        "<figure>{{#href}}<a href=\"{{href}}\">{{/href}}"
        "<img src=\"{{url}}\" alt=\"{{alt}}\"{{#width}} width=\"{{width}}\"{{/width}}"
        "{{#height}} height=\"{{height}}\"{{/height}}>"
        "{{#href}}</a>{{/href}}" + _CAPTION + "</figure>"
    ),
    "gallery": "<figure>{{{children}}}" + _CAPTION + "</figure>",
    "video": (
        "<figure><video controls src=\"{{src}}\"{{#poster}} poster=\"{{poster}}\"{{/poster}}></video>"
        + _CAPTION + "</figure>"
    ),
    "audio": "<figure><audio controls src=\"{{src}}\"></audio>" + _CAPTION + "</figure>",
    "file": (
        "<div><a href=\"{{href}}\">{{fileName}}</a>"
        "{{#showDownloadButton}} <a href=\"{{href}}\" download>{{downloadButtonText}}</a>{{/showDownloadButton}}</div>"
    ),
    "embed": (
        "<figure><div>{{#url}}<iframe src=\"{{url}}\" title=\"{{providerNameSlug}}\"></iframe>{{/url}}</div>"
        + _CAPTION + "</figure>"
    ),
    "cover": "<div{{#url}} style=\"background-image:url({{url}})\"{{/url}}>{{{children}}}</div>",
    "media-text": (
        "<div><figure>{{#mediaUrl}}<img src=\"{{mediaUrl}}\" alt=\"{{mediaAlt}}\">{{/mediaUrl}}</figure>"
        "<div>{{{children}}}</div></div>"
    ),
    "button": "{{#url}}<a href=\"{{url}}\">{{{text}}}</a>{{/url}}{{^url}}<button type=\"button\">{{{text}}}</button>{{/url}}",
    "buttons": "<div>{{{children}}}</div>",
    "html": "{{{content}}}",
}

WRAPPER_TEMPLATE = "<div>{{{children}}}</div>"


def _spacer_height(value: Any) -> str:
    if value in (None, ""):
        return "100px"
    if isinstance(value, (int, float)):
        return f"{value}px"
    return str(value)


def _table_markup(attributes: dict[str, Any]) -> str:
    """Build a table from head/body/foot row attributes."""
    sections = []
    for section, default_tag in (("head", "th"), ("body", "td"), ("foot", "td")):
        rows = attributes.get(section)
        if not rows or not isinstance(rows, (list, tuple)):
            continue
        row_markup = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            cells = []
            row_cells = row.get("cells")
            for cell in row_cells if isinstance(row_cells, (list, tuple)) else ():
                if not isinstance(cell, dict):
                    continue
                tag = cell.get("tag", default_tag)
                if tag not in ("th", "td"):
                    tag = default_tag
                cells.append(f"<{tag}>{cell.get('content', '')}</{tag}>")
            row_markup.append(f"<tr>{''.join(cells)}</tr>")
        sections.append(f"<t{section}>{''.join(row_markup)}</t{section}>")
    caption = attributes.get("caption")
    caption_markup = f"<figcaption>{caption}</figcaption>" if caption else ""
    return f"<figure><table>{''.join(sections)}</table>{caption_markup}</figure>"


def _template_data(block: Block, children: list[str]) -> dict[str, Any]:
    data: dict[str, Any] = dict(block.attributes)
    data["children"] = "".join(children)
    category = block.category
    if category == "heading":
        data["level"] = heading_level(block.attributes)
    elif category == "list":
        data["tag"] = "ol" if block.attributes.get("ordered") else "ul"
    elif category == "spacer":
        data["height"] = _spacer_height(block.attributes.get("height"))
    elif category == "group":
        tag = str(block.attributes.get("tagName") or "div")
        data["tagName"] = tag if re.fullmatch(r"[a-z][a-z0-9]*", tag) else "div"
    elif category == "file":
        data.setdefault("fileName", data.get("href", ""))
        data.setdefault("downloadButtonText", "Download")
    return data


def synthesize(block: Block, children: list[str]) -> str:
    """Build markup from attributes for a block that has no rendered fragments."""
    category = block.category
    if category == "table":
        return _table_markup(block.attributes)
    template = TEMPLATES.get(category)
    if template is None:
        if not children:
            return ""
        template = WRAPPER_TEMPLATE
    return chevron.render(template, _template_data(block, children))


def extra_classes(block: Block) -> list[str]:
    """Editor-assigned custom classes ("Additional CSS class" field)."""
    value = block.attributes.get("className")
    if not isinstance(value, str):
        return []
    return [escape(c) for c in value.split()]
