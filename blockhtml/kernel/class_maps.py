"""
blockhtml Kernel -- Class Mapping Registry

Maps a CSS framework identifier to a class map: semantic role -> classes.

A role entry is either a class string (base classes only) or a dict:

    {"base": "flex", "verticalAlignment": {"center": "items-center"}}

Every key other than "base" names a block attribute; its value maps the
attribute's value to extra classes. Unknown roles, attributes and values
resolve to no class -- resolution never raises.

Precedence for a role: custom map > registered framework > built-in default
(only when the framework id is unknown) > "".
"""

from __future__ import annotations

import logging
from typing import Any

from blockhtml.kernel.markup import split_classes
from blockhtml.kernel.types import UNKNOWN_FRAMEWORK, Warning, WarningCallback

logger = logging.getLogger(__name__)

RoleClasses = str | dict[str, Any]
ClassMap = dict[str, RoleClasses]

HEADING_ROLES: list[str] = [f"heading.h{level}" for level in range(1, 7)]

ROLES: list[str] = [
    *HEADING_ROLES,
    "paragraph",
    "columns",
    "column",
    "image",
    "button",
    "buttons",
    "list",
    "listItem",
    "quote",
    "pullquote",
    "table",
    "code",
    "preformatted",
    "separator",
    "spacer",
    "group",
    "cover",
    "gallery",
    "video",
    "audio",
    "file",
    "mediaText",
    "embed",
    "wrapper",
]


def _text_align(left: str, center: str, right: str, justify: str = "") -> dict[str, str]:
    variants = {"left": left, "center": center, "right": right}
    if justify:
        variants["justify"] = justify
    return variants


def _text_role(base: str, align: dict[str, str]) -> dict[str, Any]:
    # Older editor versions store text alignment in "align", newer in "textAlign"
    return {"base": base, "align": align, "textAlign": align}


# ---------------------------------------------------------------------------
# Built-in frameworks
# ---------------------------------------------------------------------------

_TW_ALIGN = _text_align("text-left", "text-center", "text-right", "text-justify")

TAILWIND: ClassMap = {
    "heading.h1": _text_role("text-4xl font-bold mb-4", _TW_ALIGN),
    "heading.h2": _text_role("text-3xl font-bold mb-3", _TW_ALIGN),
    "heading.h3": _text_role("text-2xl font-bold mb-3", _TW_ALIGN),
    "heading.h4": _text_role("text-xl font-bold mb-2", _TW_ALIGN),
    "heading.h5": _text_role("text-lg font-bold mb-2", _TW_ALIGN),
    "heading.h6": _text_role("text-base font-bold mb-2", _TW_ALIGN),
    "paragraph": _text_role("", _TW_ALIGN),
    "columns": {
        "base": "flex flex-col md:flex-row gap-4",
        "verticalAlignment": {"top": "items-start", "center": "items-center", "bottom": "items-end"},
    },
    "column": {
        "base": "flex-1",
        "verticalAlignment": {"top": "self-start", "center": "self-center", "bottom": "self-end"},
    },
    "image": {
        "base": "max-w-full h-auto",
        "align": {
            "left": "float-left mr-4",
            "right": "float-right ml-4",
            "center": "mx-auto",
            "wide": "w-full",
            "full": "w-screen max-w-none",
        },
    },
    "button": "inline-block px-4 py-2 bg-blue-600 text-white rounded hover:bg-blue-700",
    "buttons": {
        "base": "flex flex-wrap gap-2",
        "align": {"left": "justify-start", "center": "justify-center", "right": "justify-end"},
    },
    "list": {"base": "pl-5 mb-4", "ordered": {"true": "list-decimal", "false": "list-disc"}},
    "listItem": "mb-1",
    "quote": "border-l-4 border-gray-300 pl-4 italic my-4",
    "pullquote": "border-y-4 border-gray-300 py-4 text-center text-xl italic my-6",
    "table": "min-w-full table-auto border-collapse",
    "code": "font-mono text-sm bg-gray-100 p-4 rounded overflow-x-auto",
    "preformatted": "font-mono whitespace-pre-wrap bg-gray-50 p-4",
    "separator": "border-t border-gray-300 my-8",
    "spacer": "",
    "group": "mb-4",
    "cover": "relative flex items-center justify-center min-h-[430px] bg-cover bg-center",
    "gallery": "grid grid-cols-2 md:grid-cols-3 gap-4",
    "video": "w-full",
    "audio": "w-full",
    "file": "flex items-center gap-2",
    "mediaText": "grid md:grid-cols-2 gap-4 items-center",
    "embed": "relative w-full",
    "wrapper": "",
}

_BS_ALIGN = _text_align("text-start", "text-center", "text-end")

BOOTSTRAP: ClassMap = {
    **{role: _text_role("mb-3", _BS_ALIGN) for role in HEADING_ROLES},
    "paragraph": _text_role("", _BS_ALIGN),
    "columns": {
        "base": "row",
        "verticalAlignment": {
            "top": "align-items-start",
            "center": "align-items-center",
            "bottom": "align-items-end",
        },
    },
    "column": {
        "base": "col",
        "verticalAlignment": {"top": "align-self-start", "center": "align-self-center", "bottom": "align-self-end"},
    },
    "image": {
        "base": "img-fluid",
        "align": {"left": "float-start me-3", "right": "float-end ms-3", "center": "d-block mx-auto"},
    },
    "button": "btn btn-primary",
    "buttons": "d-flex flex-wrap gap-2",
    "list": "mb-3",
    "listItem": "",
    "quote": "blockquote",
    "pullquote": "blockquote text-center fs-4",
    "table": "table",
    "code": "bg-light p-3 rounded",
    "preformatted": "bg-light p-3",
    "separator": "my-4",
    "spacer": "",
    "group": "mb-3",
    "cover": "position-relative d-flex align-items-center justify-content-center",
    "gallery": "row g-3",
    "video": "w-100",
    "audio": "w-100",
    "file": "d-flex align-items-center gap-2",
    "mediaText": "row align-items-center",
    "embed": "ratio ratio-16x9",
    "wrapper": "",
}

_BULMA_ALIGN = _text_align("has-text-left", "has-text-centered", "has-text-right", "has-text-justified")

BULMA: ClassMap = {
    **{f"heading.h{level}": _text_role(f"title is-{level}", _BULMA_ALIGN) for level in range(1, 7)},
    "paragraph": _text_role("", _BULMA_ALIGN),
    "columns": {"base": "columns", "verticalAlignment": {"center": "is-vcentered"}},
    "column": "column",
    "image": {"base": "image", "align": {"left": "is-pulled-left", "right": "is-pulled-right"}},
    "button": "button is-primary",
    "buttons": "buttons",
    "list": "",
    "listItem": "",
    "quote": "",
    "pullquote": "has-text-centered is-size-4",
    "table": "table",
    "code": "",
    "preformatted": "",
    "separator": "",
    "spacer": "",
    "group": "block",
    "cover": "hero is-medium",
    "gallery": "columns is-multiline",
    "video": "",
    "audio": "",
    "file": "",
    "mediaText": "columns is-vcentered",
    "embed": "image is-16by9",
    "wrapper": "",
}

_FOUNDATION_ALIGN = _text_align("text-left", "text-center", "text-right", "text-justify")

FOUNDATION: ClassMap = {
    **{role: _text_role("", _FOUNDATION_ALIGN) for role in HEADING_ROLES},
    "paragraph": _text_role("", _FOUNDATION_ALIGN),
    "columns": {
        "base": "grid-x grid-margin-x",
        "verticalAlignment": {"top": "align-top", "center": "align-middle", "bottom": "align-bottom"},
    },
    "column": "cell auto",
    "image": {"base": "", "align": {"left": "float-left", "right": "float-right", "center": "float-center"}},
    "button": "button",
    "buttons": "button-group",
    "list": "",
    "listItem": "",
    "quote": "",
    "pullquote": "text-center",
    "table": "hover",
    "code": "code",
    "preformatted": "",
    "separator": "",
    "spacer": "",
    "group": "grid-container",
    "cover": "callout large",
    "gallery": "grid-x grid-margin-x small-up-2 medium-up-3",
    "video": "",
    "audio": "",
    "file": "",
    "mediaText": "grid-x grid-margin-x align-middle",
    "embed": "responsive-embed",
    "wrapper": "",
}

_WP_TEXT_ALIGN = _text_align("has-text-align-left", "has-text-align-center", "has-text-align-right")
_WP_BLOCK_ALIGN = {
    "left": "alignleft",
    "right": "alignright",
    "center": "aligncenter",
    "wide": "alignwide",
    "full": "alignfull",
}

# Used when a framework id is unknown: the editor's own class names.
DEFAULT: ClassMap = {
    **{role: _text_role("wp-block-heading", _WP_TEXT_ALIGN) for role in HEADING_ROLES},
    "paragraph": _text_role("", _WP_TEXT_ALIGN),
    "columns": {
        "base": "wp-block-columns",
        "verticalAlignment": {
            "top": "are-vertically-aligned-top",
            "center": "are-vertically-aligned-center",
            "bottom": "are-vertically-aligned-bottom",
        },
    },
    "column": {
        "base": "wp-block-column",
        "verticalAlignment": {
            "top": "is-vertically-aligned-top",
            "center": "is-vertically-aligned-center",
            "bottom": "is-vertically-aligned-bottom",
        },
    },
    "image": {"base": "wp-block-image", "align": _WP_BLOCK_ALIGN},
    "button": "wp-block-button",
    "buttons": "wp-block-buttons",
    "list": "wp-block-list",
    "listItem": "",
    "quote": "wp-block-quote",
    "pullquote": "wp-block-pullquote",
    "table": "wp-block-table",
    "code": "wp-block-code",
    "preformatted": "wp-block-preformatted",
    "separator": "wp-block-separator",
    "spacer": "wp-block-spacer",
    "group": {"base": "wp-block-group", "align": _WP_BLOCK_ALIGN},
    "cover": {"base": "wp-block-cover", "align": _WP_BLOCK_ALIGN},
    "gallery": "wp-block-gallery",
    "video": "wp-block-video",
    "audio": "wp-block-audio",
    "file": "wp-block-file",
    "mediaText": "wp-block-media-text",
    "embed": "wp-block-embed",
    "wrapper": "",
}

NONE: ClassMap = {role: "" for role in ROLES}

BUILTIN_CLASS_MAPS: dict[str, ClassMap] = {
    "tailwind": TAILWIND,
    "bootstrap": BOOTSTRAP,
    "bulma": BULMA,
    "foundation": FOUNDATION,
    "default": DEFAULT,
    "custom": {},
    "none": NONE,
}


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def _variant_key(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _base_classes(entry: RoleClasses | None) -> str:
    if entry is None:
        return ""
    if isinstance(entry, str):
        return entry
    return entry.get("base", "") or ""


def _variant_classes(entry: RoleClasses | None, attribute: str, value: Any) -> str:
    if not isinstance(entry, dict):
        return ""
    variants = entry.get(attribute)
    if not isinstance(variants, dict):
        return ""
    return variants.get(_variant_key(value), "") or ""


class ClassMapRegistry:
    """
    Framework id -> class map. Registration overwrites; resolution never raises.
    """

    def __init__(self, *, seed: bool = True) -> None:
        self._frameworks: dict[str, ClassMap] = {}
        self._warned: set[str] = set()
        if seed:
            for framework_id, class_map in BUILTIN_CLASS_MAPS.items():
                self.register(framework_id, class_map)

    # -- registration --

    def register(self, framework_id: str, class_map: ClassMap) -> None:
        """Register (or replace) a framework's class map."""
        self._frameworks[framework_id] = dict(class_map or {})
        self._warned.discard(framework_id)

    def get(self, framework_id: str) -> ClassMap | None:
        return self._frameworks.get(framework_id)

    def __contains__(self, framework_id: object) -> bool:
        return framework_id in self._frameworks

    @property
    def frameworks(self) -> list[str]:
        return sorted(self._frameworks)

    # -- resolution --

    def _entry(
        self,
        framework_id: str,
        role: str,
        custom_map: ClassMap | None,
        on_warning: WarningCallback | None = None,
    ) -> RoleClasses | None:
        if custom_map and role in custom_map:
            return custom_map[role]
        framework = self._frameworks.get(framework_id)
        if framework is None:
            self._warn_unknown(framework_id, on_warning)
            return DEFAULT.get(role)
        return framework.get(role)

    def _warn_unknown(self, framework_id: str, on_warning: WarningCallback | None) -> None:
        if on_warning is not None:
            on_warning(
                Warning(
                    code=UNKNOWN_FRAMEWORK,
                    message=f"Unknown CSS framework {framework_id!r}; using default class names",
                    details={"framework": framework_id},
                )
            )
        if framework_id not in self._warned:
            self._warned.add(framework_id)
            logger.warning("class_maps: unknown CSS framework %r, falling back to default", framework_id)

    def resolve(
        self,
        framework_id: str,
        role: str,
        variant: tuple[str, Any] | None = None,
        *,
        custom_map: ClassMap | None = None,
    ) -> str:
        """
        Resolve the class string for a role, or for one of its variants when
        `variant` is an (attribute, value) pair.
        """
        entry = self._entry(framework_id, role, custom_map)
        if variant is None:
            return _base_classes(entry)
        attribute, value = variant
        return _variant_classes(entry, attribute, value)

    def classes_for(
        self,
        framework_id: str,
        role: str,
        attributes: dict[str, Any] | None = None,
        *,
        custom_map: ClassMap | None = None,
        on_warning: WarningCallback | None = None,
    ) -> list[str]:
        """Base classes plus every variant matched by the block's attributes."""
        entry = self._entry(framework_id, role, custom_map, on_warning)
        parts = [_base_classes(entry)]
        if isinstance(entry, dict) and attributes:
            for attribute in entry:
                if attribute == "base" or attribute not in attributes:
                    continue
                parts.append(_variant_classes(entry, attribute, attributes[attribute]))
        return split_classes(parts)
