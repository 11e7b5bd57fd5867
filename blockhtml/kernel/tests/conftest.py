"""
Kernel test configuration.

Every test gets a fresh ConversionContext, so registrations made by one test
never leak into the next. Tests that go through the module-level register_*
functions use reset_default_context, which swaps fresh registries into the
process-wide default context for the duration of the test.
"""

import pytest

from blockhtml.kernel.class_maps import ClassMapRegistry
from blockhtml.kernel.context import ConversionContext, default_context
from blockhtml.kernel.transformers import TransformerRegistry


@pytest.fixture
def ctx():
    return ConversionContext()


@pytest.fixture
def reset_default_context(monkeypatch):
    monkeypatch.setattr(default_context, "class_maps", ClassMapRegistry())
    monkeypatch.setattr(default_context, "transformers", TransformerRegistry())
    return default_context
