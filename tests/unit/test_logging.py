"""
Unit tests for rich logging helpers.
"""

import io
import logging

from rich.console import Console

from apimacro.logging import MACRO_THEME, get_logger, get_macro_logger


def capture(logger):
    buffer = io.StringIO()
    logger.console = Console(file=buffer, theme=MACRO_THEME, width=200, color_system=None)
    return buffer


class TestMacroLogger:
    """Tests for MacroLogger output helpers."""

    def test_get_logger_returns_named_logger(self):
        logger = get_logger("apimacro.tests")

        assert isinstance(logger, logging.Logger)
        assert logger.name == "apimacro.tests"

    def test_call_line(self):
        logger = get_macro_logger("apimacro.tests")
        buffer = capture(logger)

        logger.call(2, "POST", "/api/items/add", "success", 12.4)

        output = buffer.getvalue()
        assert "[2]" in output
        assert "POST" in output
        assert "/api/items/add ... success" in output
        assert "(12ms)" in output

    def test_paths_are_not_markup(self):
        logger = get_macro_logger("apimacro.tests")
        buffer = capture(logger)

        logger.call(0, "GET", "/items/[bold]x[/bold]", "error")

        assert "/items/[bold]x[/bold]" in buffer.getvalue()

    def test_success_and_dry_run(self):
        logger = get_macro_logger("apimacro.tests")
        buffer = capture(logger)

        logger.success("Macro saved")
        logger.dry_run("[0] GET /items")

        output = buffer.getvalue()
        assert "✓ Macro saved" in output
        assert "[DRY RUN] [0] GET /items" in output
