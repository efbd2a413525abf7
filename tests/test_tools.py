"""Tests for the built-in tools (toolbot.tool.builtin)."""

from __future__ import annotations

import os
import threading
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from conftest import ScriptedTransport, text_reply
from toolbot.errors import ToolArgumentError, ToolbotError, TransportError
from toolbot.tool.builtin import calendar as calendar_mod
from toolbot.tool.builtin import oci as oci_mod
from toolbot.tool.builtin.bash import BashTool
from toolbot.tool.builtin.calendar import NOT_AUTHENTICATED, CalendarTool, format_event
from toolbot.tool.builtin.clock import TimeTool, format_timestamp
from toolbot.tool.builtin.oci import (
    OCITool,
    annotation_flags,
    normalize_ref,
    strip_tag,
)
from toolbot.tool.builtin.python import PythonTool
from toolbot.tool.builtin.scrape import MAX_CONTENT_CHARS, ScrapeTool, extract_text
from toolbot.tool.process import ProcessOutput
from toolbot.tool.workspace import Workspace


@pytest.fixture
def workspace(tmp_path) -> Workspace:
    return Workspace(str(tmp_path / "workspace"))


# ---------------------------------------------------------------------------
# get_current_time
# ---------------------------------------------------------------------------


class TestClock:
    def test_format_afternoon(self) -> None:
        mst = timezone(timedelta(hours=-7), "MST")
        moment = datetime(2006, 1, 2, 15, 4, tzinfo=mst)
        assert format_timestamp(moment) == "Monday, January 2, 2006 at 3:04 PM MST"

    def test_format_midnight(self) -> None:
        moment = datetime(2024, 3, 9, 0, 5, tzinfo=timezone.utc)
        assert format_timestamp(moment) == "Saturday, March 9, 2024 at 12:05 AM UTC"

    def test_format_naive(self) -> None:
        assert format_timestamp(datetime(2024, 3, 9, 9, 30)) == (
            "Saturday, March 9, 2024 at 9:30 AM"
        )

    async def test_tool_ignores_arguments(self) -> None:
        content, is_error = await TimeTool()({"unexpected": "x"})
        assert not is_error
        assert " at " in content
        assert str(datetime.now().year) in content


# ---------------------------------------------------------------------------
# bash
# ---------------------------------------------------------------------------


class TestBashTool:
    async def test_runs_in_workspace(self, workspace: Workspace) -> None:
        content, is_error = await BashTool(workspace)({"command": 'echo hi > f.txt; cat f.txt; echo "$WORKSPACE"'})
        assert not is_error
        assert content.split("\n") == ["hi", workspace.path]
        assert os.path.isfile(os.path.join(workspace.path, "f.txt"))

    async def test_no_output(self, workspace: Workspace) -> None:
        assert await BashTool(workspace)({"command": "true"}) == ("(no output)", False)

    async def test_failure_with_output_is_not_an_error(self, workspace: Workspace) -> None:
        content, is_error = await BashTool(workspace)({"command": "echo oops >&2; exit 2"})
        assert not is_error
        assert content == "STDERR:\noops\n\n\nExit code: 2"

    async def test_silent_failure_is_an_error(self, workspace: Workspace) -> None:
        content, is_error = await BashTool(workspace)({"command": "exit 4"})
        assert is_error
        assert content == "Command failed with exit code 4"

    async def test_timeout(self, workspace: Workspace) -> None:
        content, is_error = await BashTool(workspace, timeout=0.3)({"command": "echo begin; sleep 10"})
        assert not is_error
        assert content.startswith("begin")
        assert content.endswith("Command timed out after 0.3s")

    async def test_strips_ansi(self, workspace: Workspace) -> None:
        content, _ = await BashTool(workspace)({"command": r"printf '\033[31mred\033[0m'"})
        assert content == "red"

    async def test_missing_command(self, workspace: Workspace) -> None:
        content, is_error = await BashTool(workspace)({})
        assert is_error
        assert content.startswith("Invalid parameters for bash")

    async def test_blank_command(self, workspace: Workspace) -> None:
        content, is_error = await BashTool(workspace)({"command": "   "})
        assert is_error
        assert "command is required" in content


# ---------------------------------------------------------------------------
# python
# ---------------------------------------------------------------------------


class TestPythonTool:
    async def test_run_inline(self, workspace: Workspace) -> None:
        content, is_error = await PythonTool(workspace)({"operation": "run", "code": "print(6 * 7)"})
        assert (content, is_error) == ("42\n", False)
        # the temporary script is cleaned up
        assert os.listdir(workspace.path) == []

    async def test_run_error_output(self, workspace: Workspace) -> None:
        content, is_error = await PythonTool(workspace)(
            {"operation": "run", "code": "raise SystemExit('bad input')"}
        )
        assert not is_error
        assert "STDERR:" in content
        assert "bad input" in content

    async def test_run_no_output(self, workspace: Workspace) -> None:
        content, _ = await PythonTool(workspace)({"operation": "run", "code": "x = 1"})
        assert content == "(no output)"

    async def test_run_requires_code_or_file(self, workspace: Workspace) -> None:
        content, is_error = await PythonTool(workspace)({"operation": "run"})
        assert is_error
        assert "either 'code' or 'filename'" in content

    async def test_write_read_run_list(self, workspace: Workspace) -> None:
        tool = PythonTool(workspace)
        code = "print('from file')\n"

        content, is_error = await tool({"operation": "write", "filename": "hello.py", "code": code})
        assert (content, is_error) == (f"Saved to hello.py ({len(code)} bytes)", False)

        assert await tool({"operation": "read", "filename": "hello.py"}) == (code, False)
        assert await tool({"operation": "run", "filename": "hello.py"}) == ("from file\n", False)

        content, _ = await tool({"operation": "list"})
        assert content == f"Files in workspace:\n  hello.py ({len(code)} bytes)"

    async def test_write_cannot_escape(self, workspace: Workspace) -> None:
        tool = PythonTool(workspace)
        await tool({"operation": "write", "filename": "../../escape.py", "code": "x = 1"})
        assert os.path.isfile(os.path.join(workspace.path, "escape.py"))

    async def test_read_missing(self, workspace: Workspace) -> None:
        content, is_error = await PythonTool(workspace)({"operation": "read", "filename": "nope.py"})
        assert is_error
        assert content == "File not found: nope.py"

    async def test_list_empty(self, workspace: Workspace) -> None:
        assert await PythonTool(workspace)({"operation": "list"}) == ("Workspace is empty.", False)

    async def test_unknown_operation(self, workspace: Workspace) -> None:
        content, is_error = await PythonTool(workspace)({"operation": "deploy"})
        assert is_error
        assert content.startswith("Invalid parameters for python")

    async def test_develop_requires_name(self, workspace: Workspace) -> None:
        content, is_error = await PythonTool(workspace)({"operation": "develop"})
        assert is_error
        assert "name is required" in content

    async def test_develop_missing_tests(self, workspace: Workspace) -> None:
        content, is_error = await PythonTool(workspace)(
            {"operation": "develop", "name": "calc", "implementation": "X = 1"}
        )
        assert is_error
        assert content == "Test file test_calc.py not found - provide 'tests' parameter"

    async def test_develop_reports_results(
        self, workspace: Workspace, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        runs: list[list[str]] = []

        async def fake_run(argv, cwd=None, timeout=60.0, env=None, stdin=None):
            runs.append(argv)
            return ProcessOutput(
                stdout="test_calc.py::test_add PASSED\n1 passed in 0.01s", returncode=0
            )

        monkeypatch.setattr("toolbot.tool.builtin.python.run_process", fake_run)
        content, is_error = await PythonTool(workspace)(
            {
                "operation": "develop",
                "name": "calc",
                "implementation": "def add(a, b):\n    return a + b\n",
                "tests": "from calc import add\n\ndef test_add():\n    assert add(1, 2) == 3\n",
            }
        )
        assert not is_error
        assert content.startswith("ALL TESTS PASSED")
        assert "- calc.py\n- test_calc.py" in content
        assert runs == [["pytest", "-v", "--tb=short", "test_calc.py"]]
        assert os.path.isfile(os.path.join(workspace.path, "calc.py"))

    async def test_develop_failure_asks_for_fix(
        self, workspace: Workspace, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        async def fake_run(argv, cwd=None, timeout=60.0, env=None, stdin=None):
            return ProcessOutput(
                stdout="test_calc.py::test_add FAILED\n1 failed in 0.01s", returncode=1
            )

        monkeypatch.setattr("toolbot.tool.builtin.python.run_process", fake_run)
        tool = PythonTool(workspace)
        await tool(
            {"operation": "develop", "name": "calc", "implementation": "def add(a, b): return 0", "tests": "t"}
        )
        content, is_error = await tool(
            {"operation": "develop", "name": "calc", "fix_implementation": "def add(a, b): return a - b"}
        )
        assert not is_error
        assert content.startswith("TESTS FAILED")
        assert 'name: "calc"' in content
        with open(os.path.join(workspace.path, "calc.py")) as f:
            assert f.read() == "def add(a, b): return a - b"


# ---------------------------------------------------------------------------
# scrape
# ---------------------------------------------------------------------------

PAGE = """<html><head><title>T</title><style>body { color: red }</style></head>
<body>
<nav>Home | About</nav>
<header>Site header</header>
<h1>Release notes</h1>
<p>Version 2.0 adds   streaming &amp; retries.</p>
<script>var tracking = 1;</script>
<footer>Copyright</footer>
</body></html>"""


def _mock_transport(status: int = 200, body: str = PAGE) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, text=body)

    return httpx.MockTransport(handler)


class TestExtractText:
    def test_skips_chrome_and_scripts(self) -> None:
        assert extract_text(PAGE) == "T Release notes Version 2.0 adds streaming & retries."

    def test_unclosed_header_keeps_main_content(self) -> None:
        html = (
            "<html><body><header><h1>Site</h1>"
            "<main><p>Important article text</p></main></body></html>"
        )
        assert extract_text(html) == "Site Important article text"

    def test_unclosed_paragraphs(self) -> None:
        assert extract_text("<body><p>first<p>second<div>third") == "first second third"

    def test_unclosed_chrome_without_main_is_dropped(self) -> None:
        assert extract_text("<p>Body</p><aside>Related links") == "Body"

    def test_entities_decoded(self) -> None:
        html = "<p>Fish &amp; chips &lt;3 caf&eacute; &#169; &quot;open&quot;</p>"
        assert extract_text(html) == 'Fish & chips <3 café © "open"'

    def test_comments_and_noscript_skipped(self) -> None:
        html = "<p>Visible</p><!-- hidden --><noscript>Enable JS</noscript>"
        assert extract_text(html) == "Visible"

    def test_empty(self) -> None:
        assert extract_text("<script>x()</script>") == ""


class TestScrapeTool:
    async def test_summarizes(self) -> None:
        summarizer = ScriptedTransport([text_reply("  - Version 2.0 release notes  ")])
        tool = ScrapeTool(summarizer=summarizer, transport=_mock_transport())

        content, is_error = await tool({"url": "example.com/notes"})

        assert (content, is_error) == ("- Version 2.0 release notes", False)
        (prompt,) = summarizer.requests[0]
        assert "URL: https://example.com/notes" in prompt.text
        assert "streaming & retries" in prompt.text
        assert "Copyright" not in prompt.text
        assert summarizer.tool_bundles == [None]

    async def test_summary_failure_falls_back_to_text(self) -> None:
        summarizer = ScriptedTransport([TransportError("backend down")])
        tool = ScrapeTool(summarizer=summarizer, transport=_mock_transport())

        content, is_error = await tool({"url": "https://example.com"})

        assert not is_error
        assert content.startswith("Failed to summarize, here's the extracted text:\n\n")
        assert "Release notes" in content

    async def test_long_page_is_cut_before_summarizing(self) -> None:
        body = "<p>" + "a" * (MAX_CONTENT_CHARS + 500) + "</p>"
        summarizer = ScriptedTransport([text_reply("- lots of a")])
        tool = ScrapeTool(summarizer=summarizer, transport=_mock_transport(body=body))

        content, is_error = await tool({"url": "https://example.com"})

        assert (content, is_error) == ("- lots of a", False)
        (prompt,) = summarizer.requests[0]
        assert "a" * MAX_CONTENT_CHARS + "..." in prompt.text
        assert "a" * (MAX_CONTENT_CHARS + 1) not in prompt.text

    async def test_http_error_status(self) -> None:
        tool = ScrapeTool(summarizer=ScriptedTransport([]), transport=_mock_transport(404, "gone"))
        content, is_error = await tool({"url": "https://example.com/missing"})
        assert is_error
        assert content == "HTTP 404: Not Found"

    async def test_fetch_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        tool = ScrapeTool(summarizer=ScriptedTransport([]), transport=httpx.MockTransport(handler))
        content, is_error = await tool({"url": "https://example.com"})
        assert is_error
        assert content.startswith("Error fetching https://example.com: ")

    async def test_no_text(self) -> None:
        tool = ScrapeTool(
            summarizer=ScriptedTransport([]),
            transport=_mock_transport(body="<script>only()</script>"),
        )
        content, is_error = await tool({"url": "https://example.com"})
        assert (content, is_error) == ("Could not extract text content from the page.", False)


# ---------------------------------------------------------------------------
# oci
# ---------------------------------------------------------------------------


class TestOCIHelpers:
    @pytest.mark.parametrize(
        ("ref", "expected"),
        [
            ("alpine", "docker.io/library/alpine"),
            ("alpine:3.19", "docker.io/library/alpine:3.19"),
            ("bitnami/redis:7", "docker.io/bitnami/redis:7"),
            ("ghcr.io/org/app:v1", "ghcr.io/org/app:v1"),
            ("localhost:5000/app", "localhost:5000/app"),
            ("localhost/app", "localhost/app"),
            ("docker://quay.io/x/y", "quay.io/x/y"),
        ],
    )
    def test_normalize_ref(self, ref: str, expected: str) -> None:
        assert normalize_ref(ref) == expected

    def test_strip_tag(self) -> None:
        assert strip_tag("docker.io/library/nginx:1.25") == "docker.io/library/nginx"
        assert strip_tag("localhost:5000/app") == "localhost:5000/app"

    def test_annotation_flags(self) -> None:
        assert annotation_flags('{"team": "infra", "tier": 1}') == [
            "--annotation",
            "team=infra",
            "--annotation",
            "tier=1",
        ]

    def test_annotation_flags_empty(self) -> None:
        assert annotation_flags("") == []

    def test_annotation_flags_invalid(self) -> None:
        with pytest.raises(ToolArgumentError):
            annotation_flags("[1, 2]")
        with pytest.raises(ToolArgumentError):
            annotation_flags("{broken")


class TestOCITool:
    @pytest.fixture
    def commands(self, monkeypatch: pytest.MonkeyPatch) -> list[list[str]]:
        seen: list[list[str]] = []

        async def fake_run(argv, cwd=None, timeout=60.0, env=None, stdin=None):
            seen.append(argv)
            if argv[0] == "jq":
                return ProcessOutput(stdout='{\n  "schemaVersion": 2\n}', returncode=0)
            return ProcessOutput(stdout='{"schemaVersion":2}', returncode=0)

        monkeypatch.setattr(oci_mod, "run_process", fake_run)
        return seen

    async def test_inspect(self, commands: list[list[str]]) -> None:
        content, is_error = await OCITool()({"operation": "inspect", "image": "alpine:3"})
        assert not is_error
        assert commands == [["skopeo", "inspect", "docker://docker.io/library/alpine:3"]]

    async def test_list_tags_drops_tag(self, commands: list[list[str]]) -> None:
        await OCITool()({"operation": "list-tags", "image": "nginx:latest"})
        assert commands == [["skopeo", "list-tags", "docker://docker.io/library/nginx"]]

    async def test_manifest_pretty_printed(self, commands: list[list[str]]) -> None:
        content, _ = await OCITool()({"operation": "manifest", "image": "alpine"})
        assert content == '{\n  "schemaVersion": 2\n}'
        assert [c[0] for c in commands] == ["skopeo", "jq"]

    async def test_manifest_raw(self, commands: list[list[str]]) -> None:
        content, _ = await OCITool()({"operation": "manifest", "image": "alpine", "raw": "true"})
        assert content == '{"schemaVersion":2}'
        assert len(commands) == 1

    async def test_copy_all(self, commands: list[list[str]]) -> None:
        await OCITool()({"operation": "copy", "source": "alpine:3", "dest": "ghcr.io/me/alpine:3", "all": True})
        assert commands == [
            [
                "skopeo",
                "copy",
                "--all",
                "docker://docker.io/library/alpine:3",
                "docker://ghcr.io/me/alpine:3",
            ]
        ]

    async def test_push_with_annotations(self, commands: list[list[str]]) -> None:
        await OCITool()(
            {
                "operation": "push",
                "file": "report.json",
                "dest": "ghcr.io/me/reports:v1",
                "media_type": "application/json",
                "annotations": '{"owner": "me"}',
            }
        )
        assert commands == [
            [
                "oras",
                "push",
                "ghcr.io/me/reports:v1",
                "report.json:application/json",
                "--annotation",
                "owner=me",
            ]
        ]

    async def test_annotate_requires_annotations(self, commands: list[list[str]]) -> None:
        content, is_error = await OCITool()({"operation": "annotate", "image": "ghcr.io/me/x:1"})
        assert is_error
        assert "annotations JSON is required" in content
        assert commands == []

    async def test_missing_image(self, commands: list[list[str]]) -> None:
        content, is_error = await OCITool()({"operation": "inspect"})
        assert is_error
        assert content == "Invalid parameters for oci: image is required for inspect"

    async def test_copy_requires_source_and_dest(self, commands: list[list[str]]) -> None:
        content, is_error = await OCITool()({"operation": "copy", "source": "alpine"})
        assert is_error
        assert "source and dest are required" in content

    async def test_command_failure(self, monkeypatch: pytest.MonkeyPatch) -> None:
        async def fake_run(argv, cwd=None, timeout=60.0, env=None, stdin=None):
            return ProcessOutput(stderr="manifest unknown", returncode=1)

        monkeypatch.setattr(oci_mod, "run_process", fake_run)
        content, is_error = await OCITool()({"operation": "delete", "image": "ghcr.io/me/x:1"})
        assert is_error
        assert content == "Error: skopeo exited with code 1\nmanifest unknown"

    async def test_silent_success(self, monkeypatch: pytest.MonkeyPatch) -> None:
        async def fake_run(argv, cwd=None, timeout=60.0, env=None, stdin=None):
            return ProcessOutput(returncode=0)

        monkeypatch.setattr(oci_mod, "run_process", fake_run)
        content, is_error = await OCITool()({"operation": "delete", "image": "ghcr.io/me/x:1"})
        assert (content, is_error) == ("Command completed successfully", False)


# ---------------------------------------------------------------------------
# get_calendar_events
# ---------------------------------------------------------------------------


class TestFormatEvent:
    def test_timed_event_with_location(self) -> None:
        item = {
            "summary": "Standup",
            "start": {"dateTime": "2024-03-11T15:04:00-07:00"},
            "location": "Room 4",
        }
        assert format_event(item) == "- Mon Mar 11, 3:04 PM - Standup\n  Location: Room 4"

    def test_all_day_event(self) -> None:
        item = {"summary": "Holiday", "start": {"date": "2024-12-25"}}
        assert format_event(item) == "- Wed Dec 25 - Holiday"

    def test_untitled(self) -> None:
        item = {"start": {"dateTime": "2024-03-11T09:00:00Z"}}
        assert format_event(item) == "- Mon Mar 11, 9:00 AM - (no title)"


class TestCalendarTool:
    def _tool(self, tmp_path, client_id: str = "id", client_secret: str = "secret") -> CalendarTool:
        return CalendarTool(
            client_id=client_id,
            client_secret=client_secret,
            redirect_url="urn:ietf:wg:oauth:2.0:oob",
            token_file=str(tmp_path / "token.json"),
        )

    async def test_not_authenticated(self, tmp_path) -> None:
        tool = self._tool(tmp_path)
        assert not tool.authenticated
        assert await tool({}) == (NOT_AUTHENTICATED, False)

    async def test_init_requires_credentials(self, tmp_path) -> None:
        with pytest.raises(ToolbotError, match="GOOGLE_CLIENT_ID"):
            await self._tool(tmp_path, client_id="").init()

    async def test_init_without_token_returns_auth_url(self, tmp_path) -> None:
        url = await self._tool(tmp_path).init()
        assert url.startswith("https://accounts.google.com/o/oauth2/auth?")
        assert "calendar.readonly" in url

    async def test_lists_events(self, tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
        calls: list[tuple[int, int]] = []

        def fake_list(service, max_results, days_ahead):
            calls.append((max_results, days_ahead))
            return [
                {"summary": "Dentist", "start": {"dateTime": "2024-03-12T10:30:00Z"}},
                {"summary": "Offsite", "start": {"date": "2024-03-14"}},
            ]

        monkeypatch.setattr(calendar_mod, "_list_events", fake_list)
        tool = self._tool(tmp_path)
        tool._service = object()

        content, is_error = await tool({"max_results": 500, "days_ahead": 3})

        assert not is_error
        assert calls == [(50, 3)]
        assert content == (
            "Found 2 upcoming events:\n\n"
            "- Tue Mar 12, 10:30 AM - Dentist\n"
            "- Thu Mar 14 - Offsite"
        )

    async def test_no_events(self, tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(calendar_mod, "_list_events", lambda s, m, d: [])
        tool = self._tool(tmp_path)
        tool._service = object()
        assert await tool({}) == ("No upcoming events found.", False)

    async def test_complete_auth_saves_token_off_the_event_loop(
        self, tmp_path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        loop_thread = threading.get_ident()
        save_threads: list[int] = []

        class FakeCredentials:
            def to_json(self) -> str:
                save_threads.append(threading.get_ident())
                return '{"token": "t"}'

        class FakeFlow:
            credentials = FakeCredentials()

            def __init__(self) -> None:
                self.codes: list[str] = []

            def fetch_token(self, code: str) -> None:
                self.codes.append(code)

        flow = FakeFlow()
        service = object()
        monkeypatch.setattr(calendar_mod, "_build_service", lambda creds: service)
        tool = self._tool(tmp_path)
        tool._pending_flow = flow

        await tool.complete_auth("4/abc")

        assert flow.codes == ["4/abc"]
        assert (tmp_path / "token.json").read_text() == '{"token": "t"}'
        assert save_threads and save_threads[0] != loop_thread
        assert tool.authenticated
