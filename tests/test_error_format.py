"""Tests for CLI error formatting and Rich markup escaping."""

from __future__ import annotations

import asyncio
from io import StringIO

from rich.console import Console

from dlang_resolution.errors import ConfigError
from dlang_resolution.errors import CycleError
from dlang_resolution.errors import NetworkError
from dlang_resolution.utils.error_format import escape_markup
from dlang_resolution.utils.error_format import format_error_message


class TestFormatErrorMessage:
    def test_prefixes_type_name(self):
        assert format_error_message(ConfigError("bad alias")) == "ConfigError: bad alias"

    def test_includes_hint(self):
        error = NetworkError("ls-remote failed", hint="Set GITHUB_TOKEN")

        assert format_error_message(error) == "NetworkError: ls-remote failed\nHint: Set GITHUB_TOKEN"

    def test_without_type(self):
        assert format_error_message(ConfigError("bad alias"), include_type=False) == "bad alias"

    def test_cycle_message(self):
        error = CycleError([["acme/a", "acme/b", "acme/a"]])

        assert format_error_message(error) == (
            "CycleError: Circular package dependency detected: acme/a -> acme/b -> acme/a"
        )

    def test_empty_timeout_gets_friendly_message(self):
        assert format_error_message(TimeoutError()) == (
            "TimeoutError: Request timed out. The remote may be slow or unreachable."
        )

    def test_cancelled(self):
        assert format_error_message(asyncio.CancelledError()) == "CancelledError: Operation was cancelled."

    def test_unknown_empty_exception(self):
        assert format_error_message(RuntimeError()) == "RuntimeError: (no additional details)"


class TestEscapeMarkup:
    def test_ref_in_brackets(self):
        """Bracketed text such as [main] would otherwise be eaten as markup."""
        result = escape_markup("[main]")
        assert "main" in result

    def test_preserves_plain_text(self):
        assert escape_markup("acme/core@v1.0.0") == "acme/core@v1.0.0"

    def test_handles_non_string_input(self):
        assert escape_markup(ValueError("boom")) == "boom"
        assert escape_markup(42) == "42"

    def test_renders_literally_in_rich(self):
        buf = StringIO()
        c = Console(file=buf, force_terminal=False, no_color=True)
        escaped = escape_markup("Missing [/memory/github.com/acme/core]")
        c.print(f"[red]Error:[/red] {escaped}")
        assert "[/memory/github.com/acme/core]" in buf.getvalue()
