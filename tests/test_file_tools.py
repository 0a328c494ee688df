"""Tests for the file system and shell tools, run against a temporary project directory."""

import os
import shutil
import time

import pytest

from agentdeck.tools import (
    TOOL_REGISTRY,
    ToolContext,
)


async def _run(ctx: ToolContext, name: str, **kwargs) -> str:
    return await TOOL_REGISTRY.invoke(name, kwargs, ctx)


async def _approve(question: str) -> bool:
    return True


# ---------------------------------------------------------------------------
# create / edit / undo
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_create_file_resolves_relative_paths(tool_context, project_dir) -> None:
    output = await _run(tool_context, "create_file", path="pkg/mod.py", content="x = 1\n")
    target = project_dir / "pkg" / "mod.py"
    assert output == f"File created at {target}"
    assert target.read_text() == "x = 1\n"
    assert tool_context.files_created == [str(target)]


@pytest.mark.asyncio
async def test_edit_file_replaces_unique_match(tool_context, project_dir) -> None:
    (project_dir / "a.txt").write_text("alpha\nbeta\n")
    output = await _run(tool_context, "edit_file", path="a.txt", old_str="beta", new_str="gamma")
    assert output.startswith("File edited successfully.")
    assert "- beta" in output
    assert "+ gamma" in output
    assert (project_dir / "a.txt").read_text() == "alpha\ngamma\n"


@pytest.mark.asyncio
async def test_edit_file_requires_unique_match(tool_context, project_dir) -> None:
    (project_dir / "a.txt").write_text("x x x")
    output = await _run(tool_context, "edit_file", path="a.txt", old_str="x", new_str="y")
    assert output.startswith("Error: old_str found 3 times")
    assert (project_dir / "a.txt").read_text() == "x x x"

    output = await _run(
        tool_context, "edit_file", path="a.txt", old_str="x", new_str="y", replace_all=True
    )
    assert output.startswith("File edited successfully.")
    assert (project_dir / "a.txt").read_text() == "y y y"


@pytest.mark.asyncio
async def test_edit_file_error_cases(tool_context, project_dir) -> None:
    (project_dir / "a.txt").write_text("content")
    assert (
        await _run(tool_context, "edit_file", path="a.txt", old_str="same", new_str="same")
    ) == "Error: old_str and new_str must be different"
    assert (
        await _run(tool_context, "edit_file", path="a.txt", old_str="missing", new_str="x")
    ).startswith("Error: old_str not found")
    assert (
        await _run(tool_context, "edit_file", path="nope.txt", old_str="a", new_str="b")
    ).startswith("Error: file not found")


@pytest.mark.asyncio
async def test_undo_edit_restores_previous_versions(tool_context, project_dir) -> None:
    target = project_dir / "a.txt"
    target.write_text("one")
    await _run(tool_context, "edit_file", path="a.txt", old_str="one", new_str="two")
    await _run(tool_context, "edit_file", path="a.txt", old_str="two", new_str="three")

    assert (await _run(tool_context, "undo_edit", path="a.txt")).startswith("Restored")
    assert target.read_text() == "two"
    await _run(tool_context, "undo_edit", path="a.txt")
    assert target.read_text() == "one"
    assert await _run(tool_context, "undo_edit", path="a.txt") == (
        "Error: No edit history found for this file"
    )


@pytest.mark.asyncio
async def test_edit_history_is_per_context(project_dir) -> None:
    (project_dir / "a.txt").write_text("one")
    first = ToolContext(project_path=str(project_dir))
    second = ToolContext(project_path=str(project_dir))
    await _run(first, "edit_file", path="a.txt", old_str="one", new_str="two")
    assert await _run(second, "undo_edit", path="a.txt") == (
        "Error: No edit history found for this file"
    )


# ---------------------------------------------------------------------------
# read / list
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_read_file_numbers_lines(tool_context, project_dir) -> None:
    (project_dir / "a.txt").write_text("first\nsecond\nthird")
    assert await _run(tool_context, "read_file", path="a.txt") == "1: first\n2: second\n3: third"
    assert await _run(tool_context, "read_file", path="a.txt", read_range=[2, 3]) == (
        "2: second\n3: third"
    )
    assert (await _run(tool_context, "read_file", path="a.txt", read_range=[3, 1])).startswith(
        "Error: invalid read_range"
    )


@pytest.mark.asyncio
async def test_read_file_defaults_to_first_500_lines(tool_context, project_dir) -> None:
    (project_dir / "big.txt").write_text("\n".join(f"line {n}" for n in range(1, 601)))
    output = await _run(tool_context, "read_file", path="big.txt")
    lines = output.split("\n")
    assert len(lines) == 500
    assert lines[-1] == "500: line 500"


@pytest.mark.asyncio
async def test_read_file_lists_directories(tool_context, project_dir) -> None:
    (project_dir / "src").mkdir()
    (project_dir / "README.md").write_text("hi")
    assert await _run(tool_context, "read_file", path=".") == "README.md\nsrc/"
    assert await _run(tool_context, "list_directory", path=".") == "README.md\nsrc/"
    assert (await _run(tool_context, "read_file", path="missing")).startswith(
        "Error: path not found"
    )


# ---------------------------------------------------------------------------
# destructive operations
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_delete_file_is_denied_without_an_approver(tool_context, project_dir) -> None:
    target = project_dir / "keep.txt"
    target.write_text("important")
    assert await _run(tool_context, "delete_file", path="keep.txt") == "Cancelled by user"
    assert target.exists()


@pytest.mark.asyncio
async def test_delete_with_approval(project_dir) -> None:
    ctx = ToolContext(project_path=str(project_dir), approver=_approve)
    (project_dir / "gone.txt").write_text("bye")
    (project_dir / "dir" / "nested").mkdir(parents=True)

    assert (await _run(ctx, "delete_file", path="gone.txt")).startswith("File deleted")
    assert (await _run(ctx, "delete_directory", path="dir")).startswith("Directory deleted")
    assert not (project_dir / "gone.txt").exists()
    assert not (project_dir / "dir").exists()


@pytest.mark.asyncio
async def test_directory_and_copy_operations(tool_context, project_dir) -> None:
    await _run(tool_context, "create_directory", path="a/b")
    assert (project_dir / "a" / "b").is_dir()

    (project_dir / "a" / "b" / "f.txt").write_text("data")
    await _run(tool_context, "copy_file", source_path="a/b/f.txt", destination_path="c/f.txt")
    assert (project_dir / "c" / "f.txt").read_text() == "data"

    await _run(tool_context, "copy_directory", source_path="a", destination_path="a2")
    assert (project_dir / "a2" / "b" / "f.txt").read_text() == "data"

    await _run(tool_context, "rename_file", old_path="c/f.txt", new_path="c/g.txt")
    assert (project_dir / "c" / "g.txt").exists()
    assert not (project_dir / "c" / "f.txt").exists()

    output = await _run(tool_context, "rename_file", old_path="nope", new_path="x")
    assert output.startswith("Error: could not rename")


# ---------------------------------------------------------------------------
# shell and search
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_bash_runs_in_project_directory(tool_context, project_dir) -> None:
    output = await _run(tool_context, "bash", command="pwd")
    assert os.path.realpath(output.strip()) == os.path.realpath(project_dir)


@pytest.mark.asyncio
async def test_bash_reports_stderr_and_exit_code(tool_context) -> None:
    output = await _run(tool_context, "bash", command="echo out; echo err 1>&2; exit 3")
    assert output == "out\n\nSTDERR:\nerr\n\n(exit code 3)"


@pytest.mark.asyncio
async def test_glob_sorts_newest_first(tool_context, project_dir) -> None:
    (project_dir / "pkg").mkdir()
    old = project_dir / "pkg" / "old.py"
    new = project_dir / "new.py"
    old.write_text("")
    new.write_text("")
    (project_dir / "notes.txt").write_text("")
    past = time.time() - 100
    os.utime(old, (past, past))

    assert await _run(tool_context, "glob", pattern="**/*.py") == "new.py\npkg/old.py"
    assert await _run(tool_context, "glob", pattern="**/*.py", limit=1) == "new.py"
    assert await _run(tool_context, "glob", pattern="*.rs") == "No files found"


@pytest.mark.asyncio
async def test_glob_accepts_absolute_patterns(tool_context, project_dir) -> None:
    (project_dir / "app.conf").write_text("")
    (project_dir / "notes.txt").write_text("")
    output = await _run(tool_context, "glob", pattern=f"{project_dir}/*.conf")
    assert output == str(project_dir / "app.conf")
    assert not (await _run(tool_context, "glob", pattern="/etc/*.conf")).startswith("Error")


@pytest.mark.asyncio
async def test_glob_reports_unusable_patterns(tool_context) -> None:
    assert (await _run(tool_context, "glob", pattern="")).startswith(
        "Error: invalid glob pattern ''"
    )


@pytest.mark.asyncio
@pytest.mark.skipif(shutil.which("rg") is None, reason="ripgrep is not installed")
async def test_grep_and_finder(tool_context, project_dir) -> None:
    (project_dir / "app.py").write_text("def handle_request():\n    return 1\n")
    output = await _run(tool_context, "grep", pattern="HANDLE_REQUEST")
    assert "app.py" in output
    assert "1:" in output

    assert await _run(tool_context, "grep", pattern="HANDLE_REQUEST", case_sensitive=True) == (
        "No matches found"
    )

    found = await _run(tool_context, "finder", query="where is request handling")
    assert 'Files matching "where"' not in found
    assert "app.py" in found
