"""
blockhtml Class Maps -- Resolution Tests

Framework id + semantic role (+ optional variant) -> class string.

Resolution never raises: unknown roles and variants give "", unknown
framework ids fall back to the editor's own class names, and a caller's
custom map beats everything.
"""

import pytest

from blockhtml.kernel.class_maps import (
    BUILTIN_CLASS_MAPS,
    DEFAULT,
    ROLES,
    TAILWIND,
    ClassMapRegistry,
)
from blockhtml.kernel.types import UNKNOWN_FRAMEWORK

# ============================================================================
# Built-in frameworks
# ============================================================================


class TestBuiltinFrameworks:
    """Every built-in framework answers every role with a string."""

    @pytest.mark.parametrize("framework_id", sorted(BUILTIN_CLASS_MAPS))
    def test_every_role_resolves_to_str(self, framework_id):
        registry = ClassMapRegistry()
        for role in ROLES:
            assert isinstance(registry.resolve(framework_id, role), str)

    def test_unknown_role_is_empty(self):
        registry = ClassMapRegistry()
        assert registry.resolve("tailwind", "marquee") == ""

    def test_seeded_frameworks(self):
        registry = ClassMapRegistry()
        for framework_id in ("tailwind", "bootstrap", "bulma", "foundation", "default", "custom", "none"):
            assert framework_id in registry

    def test_unseeded_registry_is_empty(self):
        assert ClassMapRegistry(seed=False).frameworks == []

    def test_none_framework_emits_nothing(self):
        registry = ClassMapRegistry()
        for role in ROLES:
            assert registry.resolve("none", role) == ""

    def test_tailwind_heading_base(self):
        registry = ClassMapRegistry()
        assert registry.resolve("tailwind", "heading.h1") == "text-4xl font-bold mb-4"


# ============================================================================
# Variants
# ============================================================================


class TestVariants:
    """Attribute-driven extra classes."""

    def test_text_align_variant(self):
        registry = ClassMapRegistry()
        assert registry.resolve("tailwind", "paragraph", ("align", "center")) == "text-center"

    def test_boolean_variant_key(self):
        registry = ClassMapRegistry()
        assert registry.resolve("tailwind", "list", ("ordered", True)) == "list-decimal"
        assert registry.resolve("tailwind", "list", ("ordered", False)) == "list-disc"

    def test_unknown_variant_value_is_empty(self):
        registry = ClassMapRegistry()
        assert registry.resolve("tailwind", "paragraph", ("align", "diagonal")) == ""

    def test_classes_for_merges_base_and_variants(self):
        registry = ClassMapRegistry()
        classes = registry.classes_for("tailwind", "columns", {"verticalAlignment": "center", "ignored": 1})
        assert classes == ["flex", "flex-col", "md:flex-row", "gap-4", "items-center"]

    def test_align_and_text_align_do_not_duplicate(self):
        registry = ClassMapRegistry()
        classes = registry.classes_for("tailwind", "paragraph", {"align": "center", "textAlign": "center"})
        assert classes == ["text-center"]


# ============================================================================
# Precedence and fallback
# ============================================================================


class TestPrecedence:
    """custom map > registered framework > default (unknown ids only) > ""."""

    def test_custom_map_beats_framework(self):
        registry = ClassMapRegistry()
        classes = registry.classes_for("tailwind", "paragraph", {}, custom_map={"paragraph": "lead"})
        assert classes == ["lead"]

    def test_custom_map_applies_under_none(self):
        registry = ClassMapRegistry()
        assert registry.resolve("none", "quote", custom_map={"quote": "my-quote"}) == "my-quote"

    def test_custom_map_missing_role_falls_through(self):
        registry = ClassMapRegistry()
        assert registry.resolve("tailwind", "table", custom_map={"paragraph": "lead"}) == TAILWIND["table"]

    def test_unknown_framework_uses_default_map(self):
        registry = ClassMapRegistry()
        assert registry.resolve("material", "quote") == DEFAULT["quote"]

    def test_unknown_framework_reports_warning(self):
        registry = ClassMapRegistry()
        seen = []
        registry.classes_for("material", "quote", {}, on_warning=seen.append)
        assert [w.code for w in seen] == [UNKNOWN_FRAMEWORK]
        assert seen[0].details == {"framework": "material"}

    def test_registered_framework_missing_role_is_empty(self):
        registry = ClassMapRegistry()
        registry.register("tiny", {"paragraph": "p"})
        assert registry.resolve("tiny", "quote") == ""


# ============================================================================
# Registration
# ============================================================================


class TestRegistration:
    def test_register_new_framework(self):
        registry = ClassMapRegistry()
        registry.register("acme", {"paragraph": {"base": "acme-p", "align": {"center": "acme-center"}}})
        assert registry.classes_for("acme", "paragraph", {"align": "center"}) == ["acme-p", "acme-center"]

    def test_register_overwrites(self):
        registry = ClassMapRegistry()
        registry.register("tailwind", {"paragraph": "prose"})
        assert registry.resolve("tailwind", "paragraph") == "prose"
        assert registry.resolve("tailwind", "quote") == ""

    def test_register_copies_map(self):
        registry = ClassMapRegistry()
        class_map = {"paragraph": "one"}
        registry.register("acme", class_map)
        class_map["paragraph"] = "two"
        assert registry.resolve("acme", "paragraph") == "one"

    def test_builtin_maps_not_mutated_by_overwrite(self):
        ClassMapRegistry().register("tailwind", {})
        assert ClassMapRegistry().resolve("tailwind", "table") == TAILWIND["table"]
