"""
File system and shell tools.

Relative paths are resolved against the run's project directory.  Every tool reports expected
failures (missing files, ambiguous edits, declined confirmations) as a returned string so the
model can correct itself within the same run.
"""

import logging
import shutil
from pathlib import Path
from typing import (
    Annotated,
    List,
    Optional,
    Tuple,
)

from pydantic import Field

from agentdeck.common import truncate
from agentdeck.tools import (
    ToolContext,
    register_tool,
)
from agentdeck.tools.process import run_process

logger = logging.getLogger(__name__)

MAX_SHELL_OUTPUT = 50_000
DEFAULT_READ_RANGE = (1, 500)


def _diff(path: Path, old_str: str, new_str: str) -> str:
    removed = "\n".join(f"- {line}" for line in old_str.split("\n"))
    added = "\n".join(f"+ {line}" for line in new_str.split("\n"))
    return f"--- {path}\n+++ {path}\n{removed}\n{added}"


def _list_entries(directory: Path) -> str:
    entries = sorted(directory.iterdir(), key=lambda entry: entry.name)
    return "\n".join(f"{entry.name}/" if entry.is_dir() else entry.name for entry in entries)


@register_tool("create_file")
async def create_file(
    ctx: ToolContext,
    path: Annotated[str, Field(description="Path to the file to create")],
    content: Annotated[str, Field(description="The content to write to the file")],
) -> str:
    """
    Create or overwrite a file. Use for new files or when replacing nearly all content of a small
    file (under ~250 lines). For partial edits to existing files, use `edit_file` instead.
    """
    target = ctx.resolve_path(path)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    except OSError as exc:
        return f"Error: could not write {target}: {exc}"
    ctx.files_created.append(str(target))
    return f"File created at {target}"


@register_tool("edit_file")
async def edit_file(
    ctx: ToolContext,
    path: Annotated[str, Field(description="Path to the file to edit")],
    old_str: Annotated[str, Field(description="Text to search for and replace")],
    new_str: Annotated[str, Field(description="Text to replace old_str with")],
    replace_all: Annotated[bool, Field(description="Replace all occurrences if true")] = False,
) -> str:
    """
    Make edits to a text file by replacing specific text.
    - The file must exist (use create_file for new files)
    - old_str must exist in the file and be unique (add context lines if needed)
    - old_str and new_str must be different
    - Set replace_all to true to replace all occurrences
    - Returns a diff of changes made
    """
    if old_str == new_str:
        return "Error: old_str and new_str must be different"

    target = ctx.resolve_path(path)
    try:
        content = target.read_text(encoding="utf-8")
    except FileNotFoundError:
        return f"Error: file not found: {target} (use create_file for new files)"
    except OSError as exc:
        return f"Error: could not read {target}: {exc}"

    occurrences = content.count(old_str)
    if occurrences == 0:
        return "Error: old_str not found in file. Make sure the text exists exactly as specified."
    if not replace_all and occurrences > 1:
        return (
            f"Error: old_str found {occurrences} times. "
            "Set replace_all=true or add more context to make it unique."
        )

    new_content = (
        content.replace(old_str, new_str) if replace_all else content.replace(old_str, new_str, 1)
    )
    try:
        target.write_text(new_content, encoding="utf-8")
    except OSError as exc:
        return f"Error: could not write {target}: {exc}"
    ctx.edit_history.setdefault(str(target), []).append(content)

    return f"File edited successfully.\n\n{_diff(target, old_str, new_str)}"


@register_tool("undo_edit")
async def undo_edit(
    ctx: ToolContext,
    path: Annotated[str, Field(description="Path to the file to restore")],
) -> str:
    """Undo the last edit made to a file, restoring it to its previous state."""
    target = ctx.resolve_path(path)
    history = ctx.edit_history.get(str(target))
    if not history:
        return "Error: No edit history found for this file"

    previous = history.pop()
    try:
        target.write_text(previous, encoding="utf-8")
    except OSError as exc:
        history.append(previous)
        return f"Error: could not restore {target}: {exc}"
    return f"Restored {target} to previous state"


@register_tool("read_file")
async def read_file(
    ctx: ToolContext,
    path: Annotated[str, Field(description="Path to the file or directory")],
    read_range: Annotated[
        Optional[Tuple[int, int]],
        Field(description="Line range [start, end] (1-indexed). Default: [1, 500]"),
    ] = None,
) -> str:
    """
    Read a file or list a directory.
    - For files: Returns content with line numbers (e.g., "1: content")
    - For directories: Returns list of entries with "/" suffix for subdirectories
    - Default returns first 500 lines; use read_range for more
    - Use grep to find specific content in large files
    """
    target = ctx.resolve_path(path)
    if not target.exists():
        return f"Error: path not found: {target}"
    try:
        if target.is_dir():
            return _list_entries(target) or "(empty directory)"
        lines = target.read_text(encoding="utf-8", errors="replace").split("\n")
    except OSError as exc:
        return f"Error: could not read {target}: {exc}"

    start, end = read_range or DEFAULT_READ_RANGE
    if start < 1 or end < start:
        return f"Error: invalid read_range [{start}, {end}]"
    selected = lines[start - 1 : end]
    return "\n".join(f"{start + offset}: {line}" for offset, line in enumerate(selected))


@register_tool("bash")
async def bash(
    ctx: ToolContext,
    command: Annotated[str, Field(description="The shell command to execute")],
    cwd: Annotated[Optional[str], Field(description="Working directory for the command")] = None,
) -> str:
    """
    Execute a shell command.
    - Do NOT chain commands with ; or && or use & for background processes
    - Do NOT use interactive commands (REPLs, editors, password prompts)
    - Environment variables and cd do not persist between commands
    - Use cwd parameter for different directories
    """
    workdir = str(ctx.resolve_path(cwd)) if cwd else ctx.project_path
    result = await run_process(["sh", "-c", command], cwd=workdir)
    output = result.stdout
    if result.stderr:
        output += f"\nSTDERR:\n{result.stderr}"
    if not result.ok:
        output += f"\n(exit code {result.returncode})"
    return truncate(output, MAX_SHELL_OUTPUT, keep="tail")


@register_tool("glob")
async def glob_files(
    ctx: ToolContext,
    pattern: Annotated[str, Field(description="Glob pattern like **/*.py or src/**/*.js")],
    limit: Annotated[Optional[int], Field(description="Maximum results to return")] = None,
) -> str:
    """
    Find files by name patterns. Returns matching file paths sorted by modification time.
    Examples:
    - **/*.py - All Python files
    - tests/**/test_*.py - Test files under tests
    - /etc/*.conf - Absolute patterns search from the filesystem root
    """
    root = Path(ctx.project_path)
    requested = pattern
    relative_to_project = True
    if Path(pattern).is_absolute():
        anchored = Path(pattern)
        root = Path(anchored.anchor)
        pattern = str(anchored.relative_to(root))
        relative_to_project = False
    try:
        matches = [match for match in root.glob(pattern) if match.is_file()]
    except (OSError, ValueError, NotImplementedError) as exc:
        return f"Error: invalid glob pattern {requested!r}: {exc}"

    def mtime(match: Path) -> float:
        try:
            return match.stat().st_mtime
        except OSError:
            return 0.0

    matches.sort(key=mtime, reverse=True)
    if limit:
        matches = matches[:limit]
    if relative_to_project:
        return "\n".join(str(match.relative_to(root)) for match in matches) or "No files found"
    return "\n".join(str(match) for match in matches) or "No files found"


@register_tool("grep")
async def grep(
    ctx: ToolContext,
    pattern: Annotated[str, Field(description="Regex pattern to search for")],
    path: Annotated[Optional[str], Field(description="File or directory to search in")] = None,
    glob: Annotated[Optional[str], Field(description="Glob pattern to filter files")] = None,
    case_sensitive: Annotated[bool, Field(description="Case-sensitive search")] = False,
    literal: Annotated[bool, Field(description="Treat pattern as literal string")] = False,
) -> str:
    """
    Search for text patterns in files using ripgrep.
    - For exact text matches (variable names, function calls, strings)
    - Use path or glob to narrow searches
    - Results limited to 100 matches, lines truncated at 200 chars
    """
    args: List[str] = ["rg", "--max-count=100", "--max-columns=200", "--line-number"]
    if not case_sensitive:
        args.append("-i")
    if literal:
        args.append("-F")
    if glob:
        args.extend(["-g", glob])
    args.extend(["--", pattern, path or "."])

    result = await run_process(args, cwd=ctx.project_path)
    if result.stderr and not result.stdout:
        return f"No matches found or error: {result.stderr}"
    return result.stdout or "No matches found"


@register_tool("finder")
async def finder(
    ctx: ToolContext,
    query: Annotated[str, Field(description="Precise engineering query describing what to find")],
) -> str:
    """
    Intelligent codebase search for complex, multi-step searches.
    Use when:
    - Locating code by behavior or concept
    - Correlating different areas of codebase
    Do NOT use when:
    - You know the exact file path (use read_file)
    - Looking for specific strings (use grep)
    """
    keywords = [word for word in query.lower().split() if len(word) > 3]
    results: List[str] = []
    for keyword in keywords[:3]:
        found = await run_process(
            ["rg", "-l", "-i", "--max-count=5", "--", keyword, "."], cwd=ctx.project_path
        )
        if found.stdout:
            results.append(f'Files matching "{keyword}":\n{found.stdout}')
    if not results:
        return "No matches found. Try different search terms."
    return "\n---\n".join(results)


@register_tool("delete_file")
async def delete_file(
    ctx: ToolContext,
    path: Annotated[str, Field(description="Path to the file to delete")],
) -> str:
    """Delete a file from the filesystem (requires confirmation)"""
    target = ctx.resolve_path(path)
    if not await ctx.confirm(f"Delete file {target}?"):
        return "Cancelled by user"
    try:
        target.unlink()
    except FileNotFoundError:
        return f"Error: file not found: {target}"
    except OSError as exc:
        return f"Error: could not delete {target}: {exc}"
    return f"File deleted: {target}"


@register_tool("create_directory")
async def create_directory(
    ctx: ToolContext,
    path: Annotated[str, Field(description="Path to the directory to create")],
) -> str:
    """Create a directory (creates parent directories if needed)"""
    target = ctx.resolve_path(path)
    try:
        target.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        return f"Error: could not create {target}: {exc}"
    return f"Directory created at {target}"


@register_tool("list_directory")
async def list_directory(
    ctx: ToolContext,
    path: Annotated[str, Field(description="Path to the directory")],
) -> str:
    """List files and subdirectories in a directory"""
    target = ctx.resolve_path(path)
    if not target.is_dir():
        return f"Error: not a directory: {target}"
    try:
        return _list_entries(target) or "(empty directory)"
    except OSError as exc:
        return f"Error: could not list {target}: {exc}"


@register_tool("delete_directory")
async def delete_directory(
    ctx: ToolContext,
    path: Annotated[str, Field(description="Path to the directory to delete")],
) -> str:
    """Delete a directory (requires confirmation)"""
    target = ctx.resolve_path(path)
    if not await ctx.confirm(f"Delete directory {target}?"):
        return "Cancelled by user"
    try:
        shutil.rmtree(target)
    except FileNotFoundError:
        return f"Error: directory not found: {target}"
    except OSError as exc:
        return f"Error: could not delete {target}: {exc}"
    return f"Directory deleted: {target}"


@register_tool("rename_file")
async def rename_file(
    ctx: ToolContext,
    old_path: Annotated[str, Field(description="Current path to the file")],
    new_path: Annotated[str, Field(description="New path for the file")],
) -> str:
    """Rename or move a file"""
    source = ctx.resolve_path(old_path)
    destination = ctx.resolve_path(new_path)
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        source.rename(destination)
    except OSError as exc:
        return f"Error: could not rename {source}: {exc}"
    return f"Renamed {source} to {destination}"


@register_tool("copy_file")
async def copy_file(
    ctx: ToolContext,
    source_path: Annotated[str, Field(description="Path to the source file")],
    destination_path: Annotated[str, Field(description="Path for the copied file")],
) -> str:
    """Copy a file to a new location"""
    source = ctx.resolve_path(source_path)
    destination = ctx.resolve_path(destination_path)
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, destination)
    except OSError as exc:
        return f"Error: could not copy {source}: {exc}"
    return f"Copied {source} to {destination}"


@register_tool("copy_directory")
async def copy_directory(
    ctx: ToolContext,
    source_path: Annotated[str, Field(description="Path to the source directory")],
    destination_path: Annotated[str, Field(description="Path for the copied directory")],
) -> str:
    """Recursively copy a directory to a new location"""
    source = ctx.resolve_path(source_path)
    destination = ctx.resolve_path(destination_path)
    try:
        shutil.copytree(source, destination, dirs_exist_ok=True)
    except OSError as exc:
        return f"Error: could not copy {source}: {exc}"
    return f"Copied directory {source} to {destination}"
