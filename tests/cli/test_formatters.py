"""Tests for output formatters."""

from __future__ import annotations

import json

import yaml

from notebook_cli.formatters import (
    format_diagnostics,
    format_error,
    format_json,
    format_response,
    format_success,
    format_table,
    format_warning,
    format_yaml,
)
from notebook_cli.transport.diagnostics import DiagnosticResult, ProbeResult
from notebook_cli.transport.models import Response


class TestStructuredFormats:
    """Tests for JSON and YAML output."""

    def test_format_json_pretty(self) -> None:
        """Test pretty JSON is indented and parseable."""
        output = format_json({"name": "Research", "count": 2})

        assert "\n  " in output
        assert json.loads(output) == {"name": "Research", "count": 2}

    def test_format_json_compact(self) -> None:
        """Test compact JSON has no newlines."""
        assert format_json({"a": 1}, pretty=False) == '{"a": 1}'

    def test_format_json_unicode(self) -> None:
        """Test non-ASCII text is kept readable."""
        assert "café" in format_json({"title": "café"})

    def test_format_yaml(self) -> None:
        """Test YAML output keeps key order."""
        output = format_yaml({"b": 1, "a": [1, 2]})

        assert output.index("b:") < output.index("a:")
        assert yaml.safe_load(output) == {"b": 1, "a": [1, 2]}


class TestTable:
    """Tests for table output."""

    def test_empty_table(self) -> None:
        """Test empty data has a placeholder."""
        assert format_table([]) == "No data to display"

    def test_table_headers_and_values(self) -> None:
        """Test columns are title-cased and values rendered."""
        output = format_table(
            [{"notebook_id": "nb-1", "archived": False, "tags": ["a", "b"]}],
            force_color=False,
        )

        assert "Notebook Id" in output
        assert "nb-1" in output
        assert "No" in output
        assert "a, b" in output

    def test_table_column_selection(self) -> None:
        """Test only requested columns are shown."""
        output = format_table(
            [{"id": "nb-1", "secret": "hidden"}],
            columns=["id"],
            force_color=False,
        )

        assert "nb-1" in output
        assert "hidden" not in output

    def test_unknown_columns_dropped(self) -> None:
        """Test requested columns missing from the data get no header."""
        output = format_table(
            [{"id": "nb-1"}],
            columns=["id", "owner_name"],
            force_color=False,
        )

        assert "nb-1" in output
        assert "Owner Name" not in output

    def test_none_rendered_as_na(self) -> None:
        """Test missing values are shown as N/A."""
        output = format_table([{"id": None}], force_color=False)

        assert "N/A" in output


class TestDiagnosticsAndResponse:
    """Tests for diagnostics and response formatting."""

    def test_format_diagnostics(self) -> None:
        """Test one row per probe with its status."""
        result = DiagnosticResult(
            target="http://localhost:5055",
            probes={
                "dns_test": ProbeResult(True, "Resolved", 0.002),
                "http_test": ProbeResult(False, "refused", 0.01),
            },
            total_duration=0.012,
        )

        output = format_diagnostics(result, force_color=False)

        assert "dns_test" in output
        assert "http_test" in output
        assert "refused" in output
        assert "Yes" in output
        assert "No" in output
        assert "localhost:5055" in output

    def test_format_response_json(self) -> None:
        """Test JSON bodies are pretty-printed."""
        output = format_response(Response(200, b'{"id":"nb-1"}'))

        assert output == '{\n  "id": "nb-1"\n}'

    def test_format_response_text(self) -> None:
        """Test non-JSON bodies are shown as text."""
        assert format_response(Response(200, b"plain text")) == "plain text"

    def test_status_markers(self) -> None:
        """Test message helpers add their markers."""
        assert format_success("done").endswith("done")
        assert "✓" in format_success("done")
        assert "✗" in format_error("failed")
        assert "⚠" in format_warning("careful")
