"""
blockhtml Kernel -- Markup Helpers

String-level HTML surgery: find the top-level tag of a fragment, merge
classes into it, add attributes, split a fragment into its top-level
elements. Regex based and best-effort, which keeps untouched markup
byte-identical (a DOM round trip would reformat it).
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from html import escape as _html_escape
from html import unescape as _html_unescape

# A start tag with quoted or bare attribute values.
START_TAG_RE = re.compile(
    r"<([a-zA-Z][a-zA-Z0-9:-]*)"
    r"((?:\s+[^\s\"'>/=]+(?:\s*=\s*(?:\"[^\"]*\"|'[^']*'|[^\s\"'=<>`]+))?)*)"
    r"\s*(/?)>"
)
END_TAG_RE = re.compile(r"</([a-zA-Z][a-zA-Z0-9:-]*)\s*>")
TOKEN_RE = re.compile(
    r"<!--.*?-->|" + END_TAG_RE.pattern + "|" + START_TAG_RE.pattern,
    re.DOTALL,
)
CLASS_ATTR_RE = re.compile(r"(\sclass\s*=\s*)([\"'])(.*?)\2", re.DOTALL | re.IGNORECASE)
ATTR_RE = re.compile(r"\s([^\s\"'>/=]+)(?:\s*=\s*(?:\"([^\"]*)\"|'([^']*)'|([^\s\"'=<>`]+)))?")

VOID_ELEMENTS: set[str] = {
    "area", "base", "br", "col", "embed", "hr", "img", "input",
    "link", "meta", "param", "source", "track", "wbr",
}

# Elements whose content is never parsed as markup.
RAW_TEXT_ELEMENTS: set[str] = {"script", "style", "textarea", "title"}


@dataclass
class ElementSpan:
    """Location of one element inside a markup string."""

    tag: str
    start: int
    end: int
    start_tag_end: int

    def slice(self, markup: str) -> str:
        return markup[self.start:self.end]


def escape(text: str) -> str:
    """HTML-escape user content."""
    return _html_escape(str(text), quote=True)


def split_classes(value: str | Iterable[str] | None) -> list[str]:
    """Split a class string (or iterable of them) into unique class names, keeping order."""
    if not value:
        return []
    if isinstance(value, str):
        parts = value.split()
    else:
        parts = [p for item in value if item for p in item.split()]
    seen: set[str] = set()
    result = []
    for part in parts:
        if part not in seen:
            seen.add(part)
            result.append(part)
    return result


def first_start_tag(markup: str) -> re.Match[str] | None:
    """Return the first start tag outside comments, or None."""
    for m in TOKEN_RE.finditer(markup):
        token = m.group(0)
        if token.startswith("<!--") or token.startswith("</"):
            continue
        return START_TAG_RE.match(markup, m.start())
    return None


def tag_classes(tag_markup: str) -> list[str]:
    m = CLASS_ATTR_RE.search(tag_markup)
    return split_classes(m.group(3)) if m else []


def tag_attribute_names(attrs: str) -> set[str]:
    return {m.group(1).lower() for m in ATTR_RE.finditer(attrs)}


def tag_attributes(attrs: str) -> dict[str, str]:
    """Parse the attribute part of a start tag. Valueless attributes map to ""."""
    result: dict[str, str] = {}
    for m in ATTR_RE.finditer(attrs):
        value = next((v for v in m.group(2, 3, 4) if v is not None), "")
        result.setdefault(m.group(1).lower(), _html_unescape(value))
    return result


def inject_classes(markup: str, classes: Iterable[str]) -> str:
    """
    Merge classes into the first start tag of markup.
    Classes already present are not repeated, so this is idempotent.
    """
    wanted = split_classes(list(classes))
    if not wanted:
        return markup
    m = first_start_tag(markup)
    if m is None:
        return markup

    tag = m.group(0)
    class_match = CLASS_ATTR_RE.search(tag)
    if class_match:
        existing = split_classes(class_match.group(3))
        merged = existing + [c for c in wanted if c not in existing]
        if merged == existing:
            return markup
        quote = class_match.group(2)
        new_tag = (
            tag[: class_match.start()]
            + f"{class_match.group(1)}{quote}{' '.join(merged)}{quote}"
            + tag[class_match.end():]
        )
    else:
        insert_at = len(m.group(1)) + 1
        new_tag = tag[:insert_at] + f' class="{escape(" ".join(wanted))}"' + tag[insert_at:]

    return markup[: m.start()] + new_tag + markup[m.end():]


def add_attributes(markup: str, attributes: dict[str, str]) -> str:
    """Add attributes to the first start tag unless it already carries them."""
    m = first_start_tag(markup)
    if m is None or not attributes:
        return markup
    present = tag_attribute_names(m.group(2) or "")
    extra = "".join(
        f' {name}="{escape(value)}"' for name, value in attributes.items() if name.lower() not in present
    )
    if not extra:
        return markup
    insert_at = m.start() + 1 + len(m.group(1)) + len(m.group(2) or "")
    return markup[:insert_at] + extra + markup[insert_at:]


def element_span(markup: str, start: int) -> ElementSpan | None:
    """Find the extent of the element whose start tag begins at `start`."""
    m = START_TAG_RE.match(markup, start)
    if m is None:
        return None
    tag = m.group(1).lower()
    if tag in VOID_ELEMENTS or m.group(3):
        return ElementSpan(tag=tag, start=start, end=m.end(), start_tag_end=m.end())

    if tag in RAW_TEXT_ELEMENTS:
        close = re.compile(rf"</{tag}\s*>", re.IGNORECASE).search(markup, m.end())
        end = close.end() if close else len(markup)
        return ElementSpan(tag=tag, start=start, end=end, start_tag_end=m.end())

    depth = 1
    for token in TOKEN_RE.finditer(markup, m.end()):
        text = token.group(0)
        if text.startswith("<!--"):
            continue
        if text.startswith("</"):
            if token.group(1).lower() == tag:
                depth -= 1
                if depth == 0:
                    return ElementSpan(tag=tag, start=start, end=token.end(), start_tag_end=m.end())
            continue
        if token.group(2).lower() == tag and not token.group(4):
            depth += 1
    # Unclosed element runs to the end of the fragment
    return ElementSpan(tag=tag, start=start, end=len(markup), start_tag_end=m.end())


def top_level_elements(markup: str) -> list[ElementSpan]:
    """Split markup into its top-level elements (text between them is skipped)."""
    spans: list[ElementSpan] = []
    pos = 0
    while pos < len(markup):
        token = TOKEN_RE.search(markup, pos)
        if token is None:
            break
        text = token.group(0)
        if text.startswith("<!--") or text.startswith("</"):
            pos = token.end()
            continue
        span = element_span(markup, token.start())
        if span is None:
            pos = token.end()
            continue
        spans.append(span)
        pos = span.end
    return spans


def emitted_classes(markup: str) -> set[str]:
    """All class names used on elements, ignoring the content of style/script blocks."""
    stripped = re.sub(r"<(style|script)\b.*?</\1\s*>", "", markup, flags=re.DOTALL | re.IGNORECASE)
    classes: set[str] = set()
    for m in START_TAG_RE.finditer(stripped):
        classes.update(tag_classes(m.group(0)))
    return classes
