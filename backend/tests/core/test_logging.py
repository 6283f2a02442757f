"""
Tests for structlog configuration.
"""

import pytest
import structlog

from playergraph.core.logging import setup_logging


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()


def test_setup_logging_uses_json_renderer_by_default():
    """Test production logging renders JSON lines."""
    setup_logging()

    config = structlog.get_config()
    assert structlog.is_configured()
    assert isinstance(config["processors"][-1], structlog.processors.JSONRenderer)
    assert config["wrapper_class"] is structlog.stdlib.BoundLogger


def test_setup_logging_console_output():
    """Test local runs can switch to the console renderer."""
    setup_logging(log_level="debug", json_output=False)

    processors = structlog.get_config()["processors"]
    assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)
    assert structlog.contextvars.merge_contextvars in processors
