"""
blockhtml Markup -- Helper Tests

Regex-level HTML surgery used by the renderer, SSR pass and hydration scan.
"""

from blockhtml.kernel.markup import (
    add_attributes,
    element_span,
    emitted_classes,
    inject_classes,
    split_classes,
    tag_attribute_names,
    tag_attributes,
    top_level_elements,
)


class TestInjectClasses:
    def test_adds_class_attribute(self):
        assert inject_classes("<p>x</p>", ["a", "b"]) == '<p class="a b">x</p>'

    def test_merges_into_existing(self):
        assert inject_classes("<p class='a'>x</p>", ["a", "b"]) == "<p class='a b'>x</p>"

    def test_idempotent(self):
        once = inject_classes("<p>x</p>", ["a"])
        assert inject_classes(once, ["a"]) == once

    def test_skips_leading_comment(self):
        assert inject_classes("<!-- <b> --><p>x</p>", ["a"]) == '<!-- <b> --><p class="a">x</p>'

    def test_text_only_is_unchanged(self):
        assert inject_classes("plain", ["a"]) == "plain"


class TestAttributes:
    def test_add_attributes_keeps_existing(self):
        markup = '<div id="a"></div>'
        assert add_attributes(markup, {"id": "b", "data-x": "1"}) == '<div id="a" data-x="1"></div>'

    def test_attribute_names_ignore_quoted_values(self):
        assert tag_attribute_names(' class="a loading" src="/x"') == {"class", "src"}

    def test_tag_attributes_unescapes_values(self):
        assert tag_attributes(' title="a &amp; b" hidden data-n=3') == {"title": "a & b", "hidden": "", "data-n": "3"}


class TestElementSpans:
    def test_nested_same_tag(self):
        markup = "<div><div>x</div></div><p>y</p>"
        span = element_span(markup, 0)
        assert span.slice(markup) == "<div><div>x</div></div>"

    def test_top_level_elements(self):
        markup = "<h2>T</h2>\n<img src='/a'><ul><li>a</li></ul>"
        assert [s.tag for s in top_level_elements(markup)] == ["h2", "img", "ul"]

    def test_style_content_is_opaque(self):
        markup = "<style>p > a { color: red }</style><p>x</p>"
        assert [s.tag for s in top_level_elements(markup)] == ["style", "p"]


class TestClasses:
    def test_split_classes_dedupes(self):
        assert split_classes(["a b", "", "b c"]) == ["a", "b", "c"]

    def test_emitted_classes_ignore_styles(self):
        markup = '<style>.x{}</style><p class="a b">x</p><script>var s = "<i class=\'y\'>";</script>'
        assert emitted_classes(markup) == {"a", "b"}
