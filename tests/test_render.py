from types import SimpleNamespace

from fakes import make_message, text_part, tool_part

from opencode_bridge.models import FilePart, PatchPart, SnapshotPart, TextPart, ToolPart, UnknownPart, parse_part
from opencode_bridge.render import CONTENT_LIMIT, render_input, render_message, render_messages, render_part


def test_text_part_is_followed_by_blank_line() -> None:
    assert render_part(TextPart(text="Done.")) == "Done.\n\n"


def test_render_part_is_pure() -> None:
    part = parse_part(tool_part("bash", "completed", input={"command": "ls"}, output="a.txt"))
    assert render_part(part) == render_part(part)


def test_completed_tool_renders_status_input_and_output() -> None:
    part = parse_part(
        tool_part("bash", "completed", title="List files", input={"command": "ls -la"}, output="ok")
    )
    assert render_part(part) == (
        "\n### Tool Execution: bash\n"
        "```\n"
        "Status: Completed\n"
        "Title: List files\n"
        "Input:\n"
        "$ ls -la\n"
        "Output:\n"
        "ok\n"
        "```\n\n"
    )


def test_pending_and_running_tool_states() -> None:
    pending = render_part(parse_part(tool_part("read", "pending")))
    running = render_part(parse_part(tool_part("read", "running", title="Reading")))
    assert "Status: Pending" in pending
    assert "Status: Running\nTitle: Reading\n" in running


def test_error_tool_state_shows_error_and_input() -> None:
    part = parse_part(tool_part("write", "error", error="permission denied", input={"file_path": "/etc/x"}))
    rendered = render_part(part)
    assert "Status: Error\nError: permission denied\nInput:\nFile: /etc/x\n" in rendered


def test_message_parts_render_in_order() -> None:
    message = make_message(
        "msg-1",
        text_part("Done."),
        tool_part("bash", "completed", input={"command": "ls"}, output="ok"),
    )
    rendered = render_message(message)
    assert rendered.index("Done.") < rendered.index("Status: Completed") < rendered.index("ok")


def test_content_at_limit_is_verbatim() -> None:
    content = "x" * CONTENT_LIMIT
    assert render_input({"content": content}) == content + "\n"


def test_content_over_limit_is_truncated() -> None:
    content = "x" * (CONTENT_LIMIT + 1)
    assert render_input({"content": content}) == f"[Content truncated: {CONTENT_LIMIT + 1} chars]\n"


def test_input_key_rules() -> None:
    rendered = render_input({"cmd": "make", "path": "src/a.py", "limit": 10, "flags": ["-v"]})
    assert rendered == '$ make\nFile: src/a.py\nlimit: 10\nflags: ["-v"]\n'
    assert render_input(None) == ""


def test_file_snapshot_and_patch_parts() -> None:
    assert render_part(FilePart(filename="diagram.png", mime="image/png")) == (
        "\n### File: diagram.png\nType: image/png\n\n"
    )
    assert render_part(SnapshotPart(snapshot="abc123")) == "\n### Code Snapshot\n```\nabc123\n```\n\n"
    assert render_part(PatchPart(files=["a.py", "b.py"])) == "\n### Files Modified\n- a.py\n- b.py\n\n"


def test_unknown_part_renders_empty_without_breaking_siblings() -> None:
    message = make_message(
        "msg-2",
        text_part("before"),
        {"type": "step-start", "id": "p-2"},
        {"type": "tool", "state": {"status": "completed"}},
        text_part("after"),
    )
    assert isinstance(message.parts[1], UnknownPart)
    assert message.parts[1].original_type == "step-start"
    assert isinstance(message.parts[2], UnknownPart)
    assert render_message(message) == "before\n\nafter\n\n"


def test_part_that_fails_to_render_yields_empty_string() -> None:
    broken = ToolPart.model_construct(tool="bash", state=SimpleNamespace(status="cancelled"))
    assert render_part(broken) == ""


def test_render_messages_concatenates_in_order() -> None:
    first = make_message("m-1", text_part("one"))
    second = make_message("m-2", text_part("two"))
    assert render_messages([first, second]) == "one\n\ntwo\n\n"
