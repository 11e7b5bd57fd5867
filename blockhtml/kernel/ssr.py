"""
blockhtml Kernel -- SSR Optimization Pass

Post-processes markup the engine already produced. Never re-invokes
conversion. Each transformation can be switched on or off; toggles left as
None follow the optimization level:

  level     lazy media   dedupe styles   preconnect   critical path
  minimal   yes          no              no           no
  balanced  yes          yes             yes          no
  maximum   yes          yes             yes          yes
"""

from __future__ import annotations

import logging
import re

from blockhtml.kernel.markup import START_TAG_RE, emitted_classes, tag_attribute_names
from blockhtml.kernel.types import SSROptions

logger = logging.getLogger(__name__)

LEVEL_DEFAULTS: dict[str, dict[str, bool]] = {
    "minimal": {
        "lazy_load_media": True,
        "remove_duplicate_styles": False,
        "preconnect": False,
        "critical_path_only": False,
    },
    "balanced": {
        "lazy_load_media": True,
        "remove_duplicate_styles": True,
        "preconnect": True,
        "critical_path_only": False,
    },
    "maximum": {
        "lazy_load_media": True,
        "remove_duplicate_styles": True,
        "preconnect": True,
        "critical_path_only": True,
    },
}

LAZY_MEDIA_TAGS: set[str] = {"img", "iframe"}

STYLE_BLOCK_RE = re.compile(r"<style\b[^>]*>(.*?)</style\s*>", re.DOTALL | re.IGNORECASE)
PRECONNECT_LINK_RE = re.compile(r"<link\b[^>]*\brel\s*=\s*[\"']preconnect[\"'][^>]*>", re.IGNORECASE)
HREF_RE = re.compile(r"\shref\s*=\s*[\"']([^\"']+)[\"']", re.IGNORECASE)
EXTERNAL_URL_RE = re.compile(
    r"\s(?:src|href|poster|data-src)\s*=\s*[\"'](https?:)?//([^/\"'\s?#]+)",
    re.IGNORECASE,
)
SELECTOR_PRELUDE_RE = re.compile(r"([^{}]+)\{")
CLASS_SELECTOR_RE = re.compile(r"\.([_a-zA-Z-][_a-zA-Z0-9-]*)")


def optimize(markup: str, ssr_options: SSROptions | None = None) -> str:
    """Run the SSR pass over one markup string."""
    return SSROptimizer(ssr_options or SSROptions(enabled=True)).process(markup)


def style_class_selectors(css: str) -> set[str]:
    """Class names used in the selectors of a stylesheet (declaration bodies ignored)."""
    names: set[str] = set()
    for prelude in SELECTOR_PRELUDE_RE.findall(css):
        names.update(CLASS_SELECTOR_RE.findall(prelude))
    return names


class SSROptimizer:
    """
    Applies the pass to one or more fragments in document order.

    Media counts and seen styles carry over between process() calls, so the
    first N media elements stay eager across a whole list of nodes.
    """

    def __init__(self, options: SSROptions, *, inject_hints: bool = True) -> None:
        self.options = options
        self.inject_hints = inject_hints
        defaults = LEVEL_DEFAULTS[options.optimization_level]
        self.lazy_load_media = self._toggle(options.lazy_load_media, defaults["lazy_load_media"])
        self.remove_duplicate_styles = self._toggle(
            options.remove_duplicate_styles, defaults["remove_duplicate_styles"]
        )
        self.preconnect = self._toggle(options.preconnect, defaults["preconnect"]) or bool(options.preconnect_origins)
        self.critical_path_only = self._toggle(options.critical_path_only, defaults["critical_path_only"])
        self._media_seen = 0
        self._styles_seen: set[str] = set()
        self._hinted: set[str] = set()

    @staticmethod
    def _toggle(explicit: bool | None, default: bool) -> bool:
        return default if explicit is None else explicit

    def process(self, markup: str) -> str:
        if not self.options.enabled:
            return markup
        if self.remove_duplicate_styles:
            markup = self._dedupe_styles(markup)
        if self.critical_path_only:
            markup = self._critical_styles(markup)
        if self.lazy_load_media:
            markup = self._lazy_media(markup)
        if self.preconnect and self.inject_hints:
            markup = self._resource_hints(markup)
        return markup

    # -- transformations --

    def _dedupe_styles(self, markup: str) -> str:
        def replace(m: re.Match[str]) -> str:
            block = m.group(0)
            if block in self._styles_seen:
                return ""
            self._styles_seen.add(block)
            return block

        return STYLE_BLOCK_RE.sub(replace, markup)

    def _critical_styles(self, markup: str) -> str:
        used = emitted_classes(markup)

        def replace(m: re.Match[str]) -> str:
            selectors = style_class_selectors(m.group(1))
            # Style blocks without class selectors cannot be tied to emitted classes
            if not selectors or selectors & used:
                return m.group(0)
            logger.debug("ssr: dropping non-critical style block (%d selectors)", len(selectors))
            return ""

        return STYLE_BLOCK_RE.sub(replace, markup)

    def _lazy_media(self, markup: str) -> str:
        eager = max(0, self.options.eager_media_count)

        def replace(m: re.Match[str]) -> str:
            tag = m.group(1).lower()
            if tag not in LAZY_MEDIA_TAGS:
                return m.group(0)
            self._media_seen += 1
            attrs = m.group(2) or ""
            if self._media_seen <= eager or "loading" in tag_attribute_names(attrs):
                return m.group(0)
            slash = " /" if m.group(3) else ""
            return f'<{m.group(1)}{attrs} loading="lazy"{slash}>'

        return START_TAG_RE.sub(replace, markup)

    def _origins(self, markup: str) -> list[str]:
        if self.options.preconnect_origins:
            return list(dict.fromkeys(o.rstrip("/") for o in self.options.preconnect_origins))
        scanned = PRECONNECT_LINK_RE.sub("", markup)
        origins = []
        for scheme, host in EXTERNAL_URL_RE.findall(scanned):
            origins.append(f"{(scheme or 'https:').lower()}//{host.lower()}")
        return list(dict.fromkeys(origins))

    def _resource_hints(self, markup: str) -> str:
        existing = {
            href.rstrip("/")
            for link in PRECONNECT_LINK_RE.findall(markup)
            for href in HREF_RE.findall(link)
        }
        hints = []
        for origin in self._origins(markup):
            if origin in existing or origin in self._hinted:
                continue
            self._hinted.add(origin)
            hints.append(f'<link rel="preconnect" href="{origin}">')
        if not hints:
            return markup
        return "".join(hints) + markup
