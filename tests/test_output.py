"""Tests for the output formatter."""

import io
import json

from rich.console import Console

from xanosync.output import OutputFormatter


def make_formatter(**kwargs):
    """Build a formatter writing into string buffers."""
    stdout = io.StringIO()
    stderr = io.StringIO()
    out = OutputFormatter(
        console=Console(file=stdout, width=200, color_system=None),
        err_console=Console(file=stderr, width=200, color_system=None),
        **kwargs,
    )
    return out, stdout, stderr


class TestOutputFormatter:
    """Tests for OutputFormatter."""

    def test_info_and_errors(self):
        """Test that errors go to stderr with a prefix."""
        out, stdout, stderr = make_formatter()
        out.info("hello [world]")
        out.error("broken")
        out.warning("careful")

        assert "hello [world]" in stdout.getvalue()
        assert "Error: broken" in stderr.getvalue()
        assert "careful" in stderr.getvalue()

    def test_quiet_suppresses_info(self):
        """Test that quiet mode drops info and success but keeps print."""
        out, stdout, stderr = make_formatter(quiet=True)
        out.info("info")
        out.success("done")
        out.print("summary")
        out.error("bad")

        assert "info" not in stdout.getvalue()
        assert "done" not in stdout.getvalue()
        assert "summary" in stdout.getvalue()
        assert "bad" in stderr.getvalue()

    def test_json_mode(self):
        """Test that JSON mode only emits JSON on stdout."""
        out, stdout, _ = make_formatter(json_output=True)
        out.info("chatter")
        out.print("more chatter")
        out.output_json({"pushed": ["a.xs"]})

        assert json.loads(stdout.getvalue()) == {"pushed": ["a.xs"]}

    def test_print_summary_json(self):
        """Test that summaries become JSON objects in JSON mode."""
        out, stdout, _ = make_formatter(json_output=True)
        out.print_summary("Title", [("Workspace", "1"), ("Branch", "live")])
        assert json.loads(stdout.getvalue()) == {"Workspace": "1", "Branch": "live"}

    def test_print_summary_table(self):
        """Test the table rendering."""
        out, stdout, _ = make_formatter()
        out.print_summary("Title", [("Workspace", "1")])
        assert "Workspace" in stdout.getvalue()
        assert "Title" in stdout.getvalue()
