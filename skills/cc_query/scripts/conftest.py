"""Test configuration for the cc_query PEP-723 script.

When tests run via __main__ (PEP-723 entry point), cc_query is imported
before pytest.main() starts coverage tracing. Reloading it after coverage
activates lets the view definitions and other module-level code be traced.
"""

from __future__ import annotations

import importlib

import cc_query as mod
import pytest


@pytest.fixture(autouse=True, scope="session")
def _reload_for_coverage() -> None:
    """Reload cc_query so pytest-cov captures module-level code."""
    importlib.reload(mod)
