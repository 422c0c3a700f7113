"""
Pytest configuration for unit tests.

Disables telemetry export so get_tracer() hands out no-op spans.
"""

import os


def pytest_configure(config):
    """Configure telemetry for unit tests."""
    os.environ["ENRICH_TELEMETRY_ENABLED"] = "false"
