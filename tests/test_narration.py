"""Tests for tool-call narration."""

from __future__ import annotations

import pytest

from diffsleuth.ai.orchestration.types import ToolCall, ToolResult
from diffsleuth.progress.narration import MAX_ARGUMENT_LENGTH, NarrationAdapter, format_tool_start, sanitize
from diffsleuth.progress.sink import LineRange, NullProgressSink


def _call(name: str, arguments: str = "{}") -> ToolCall:
    return ToolCall(id="c1", name=name, arguments=arguments)


class TestFormatToolStart:
    """Tests for format_tool_start."""

    @pytest.mark.parametrize(
        "name,args,expected",
        [
            ("read_file", {"file_path": "src/index.ts"}, "📂 Read `src/index.ts`"),
            ("list_directory", {"path": "src"}, "📂 Listed `src`"),
            ("find_symbol", {"name_path": "AuthService/login"}, "🔍 Found symbol `AuthService/login`"),
            ("find_usages", {"symbol_name": "login"}, "🔎 Found usages of `login`"),
            ("find_files_by_pattern", {"pattern": "*.ts"}, "🔍 Found files matching `*.ts`"),
            ("get_symbols_overview", {"path": "src/a.ts"}, "🔎 Got symbols in `src/a.ts`"),
            ("search_for_pattern", {"pattern": "TODO"}, "🔍 Searched for `TODO`"),
            ("submit_review", {"review_content": "x"}, "📝 Submitted review"),
            ("run_subagent", {"task": "t"}, "🤖 Running sub-investigation…"),
            ("think_about_context", {}, "🧠 Reflecting on context…"),
            ("think_about_investigation", {}, "🧠 Checking investigation progress…"),
            ("think_about_task", {}, "🧠 Verifying task alignment…"),
            ("think_about_completion", {}, "🧠 Verifying analysis completeness…"),
            ("think_about_style", {}, "💭 Thinking…"),
            ("custom_tool", {}, "🔧 Ran `custom_tool`"),
        ],
    )
    def test_tool_lines(self, name, args, expected):
        """Each known tool has its own wording."""
        assert format_tool_start(name, args) == expected

    def test_missing_argument_uses_fallback(self):
        """Absent arguments fall back to a generic noun."""
        assert format_tool_start("read_file", {}) == "📂 Read `file`"
        assert format_tool_start("find_symbol", {"name_path": "   "}) == "🔍 Found symbol `symbol`"


class TestSanitize:
    """Tests for argument sanitization."""

    def test_backticks_replaced(self):
        """Backticks cannot break out of inline code."""
        assert sanitize("a`b`c", "x") == "a'b'c"

    def test_whitespace_collapsed(self):
        """Newlines and runs of spaces collapse to single spaces."""
        assert sanitize("line one\n\n  line two", "x") == "line one line two"

    def test_long_values_truncated(self):
        """Values longer than the cap end in an ellipsis."""
        result = sanitize("a" * 200, "x")

        assert len(result) == MAX_ARGUMENT_LENGTH
        assert result.endswith("…")

    def test_non_string_values(self):
        """Numbers are stringified; None uses the fallback."""
        assert sanitize(42, "x") == "42"
        assert sanitize(None, "fallback") == "fallback"


class TestNarrationAdapter:
    """Tests for NarrationAdapter."""

    def test_iteration_start_is_silent(self, sink):
        """Iteration starts produce no events."""
        NarrationAdapter(sink).on_iteration_start(1, 100)

        assert sink.events == []

    def test_tool_start_emits_progress_then_tool_start(self, sink):
        """A tool start emits a progress line followed by the structured event."""
        NarrationAdapter(sink).on_tool_call_start(_call("list_directory", '{"path": "src"}'), 0, 1)

        assert sink.events == [
            ("progress", "📂 Listed `src`"),
            ("tool_start", "list_directory", {"path": "src"}),
        ]

    def test_read_file_emits_file_reference(self, sink):
        """read_file also reports the file and its line range."""
        arguments = '{"file_path": "src/a.py", "start_line": 5, "end_line": 9}'

        NarrationAdapter(sink).on_tool_call_start(_call("read_file", arguments), 0, 1)

        assert sink.of_kind("file_reference") == [("file_reference", "src/a.py", LineRange(5, 9))]

    def test_read_file_without_lines(self, sink):
        """Without line numbers the reference has no range."""
        NarrationAdapter(sink).on_tool_call_start(_call("read_file", '{"file_path": "a.py"}'), 0, 1)

        assert sink.of_kind("file_reference") == [("file_reference", "a.py", None)]

    def test_invalid_end_line_is_ignored(self, sink):
        """An end line before the start keeps only the start."""
        arguments = '{"file_path": "a.py", "start_line": 9, "end_line": 2}'

        NarrationAdapter(sink).on_tool_call_start(_call("read_file", arguments), 0, 1)

        assert sink.of_kind("file_reference")[0][2] == LineRange(9)

    def test_malformed_arguments_still_narrated(self, sink):
        """Unparseable arguments fall back to generic wording."""
        NarrationAdapter(sink).on_tool_call_start(_call("read_file", "{oops"), 0, 1)

        assert sink.progress == ["📂 Read `file`"]
        assert sink.of_kind("file_reference") == []

    def test_completion_summaries(self, sink):
        """Completion reports success or the error text."""
        adapter = NarrationAdapter(sink)

        adapter.on_tool_call_complete(_call("read_file"), ToolResult.ok("x"), 1.0)
        adapter.on_tool_call_complete(_call("read_file"), ToolResult.failure("File not found"), 1.0)

        assert sink.of_kind("tool_complete") == [
            ("tool_complete", "read_file", True, "completed"),
            ("tool_complete", "read_file", False, "File not found"),
        ]

    def test_works_with_null_sink(self):
        """The null sink accepts every event."""
        adapter = NarrationAdapter(NullProgressSink())

        adapter.on_tool_call_start(_call("read_file", '{"file_path": "a"}'), 0, 1)
        adapter.on_tool_call_complete(_call("read_file"), ToolResult.ok(""), 0.0)


class TestLineRange:
    """Tests for LineRange."""

    def test_string_forms(self):
        """Single lines and spans render differently."""
        assert str(LineRange(5)) == "L5"
        assert str(LineRange(5, 5)) == "L5"
        assert str(LineRange(5, 9)) == "L5-L9"

    @pytest.mark.parametrize("start,end", [(0, None), (5, 4)])
    def test_invalid_ranges(self, start, end):
        """Ranges must start at 1 and not run backwards."""
        with pytest.raises(ValueError):
            LineRange(start, end)
