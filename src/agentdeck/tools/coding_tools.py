"""Web lookup, testing and repository inspection tools used by the coding agents."""

import logging
import re
import shlex
from typing import (
    Annotated,
    List,
    Optional,
)

import httpx
from pydantic import Field

from agentdeck.common import json_object
from agentdeck.config import settings
from agentdeck.tools import (
    ToolContext,
    register_tool,
)
from agentdeck.tools.process import run_process

logger = logging.getLogger(__name__)

DUCKDUCKGO_URL = "https://api.duckduckgo.com/"
MAX_PAGE_CHARS = 10_000
USER_AGENT = "Mozilla/5.0 (compatible; agentdeck/1.0)"

_SCRIPT_RE = re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)
_STYLE_RE = re.compile(r"<style[^>]*>.*?</style>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]+>")
_SPACE_RE = re.compile(r"\s+")


def html_to_text(html: str) -> str:
    """Strip scripts, styles and tags, then collapse whitespace."""
    text = _SCRIPT_RE.sub("", html)
    text = _STYLE_RE.sub("", text)
    text = _TAG_RE.sub(" ", text)
    return _SPACE_RE.sub(" ", text).strip()


@register_tool("web_search")
async def web_search(
    query: Annotated[str, Field(description="Search query")],
    max_results: Annotated[int, Field(description="Maximum results to return")] = 5,
) -> str:
    """
    Search the web for information. Use when you need up-to-date documentation, API references,
    or solutions to technical problems.
    """
    params = {"q": query, "format": "json", "no_html": "1", "skip_disambig": "1"}
    try:
        async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT) as client:
            response = await client.get(DUCKDUCKGO_URL, params=params)
            response.raise_for_status()
    except httpx.HTTPError as e:
        logger.warning("Web search for %r failed: %s", query, e)
        return f"Search failed: {e}"
    data = json_object(response)
    if data is None:
        return "Search failed: the search service returned a non-JSON response"

    results: List[str] = []
    if data.get("Abstract"):
        results.append(
            f"**{data.get('Heading')}**\n{data['Abstract']}\nSource: {data.get('AbstractURL')}"
        )
    for topic in (data.get("RelatedTopics") or [])[:max_results]:
        if isinstance(topic, dict) and topic.get("Text") and topic.get("FirstURL"):
            results.append(f"- {topic['Text']}\n  {topic['FirstURL']}")

    return "\n\n".join(results) if results else "No results found. Try a different query."


@register_tool("read_web_page")
async def read_web_page(
    url: Annotated[str, Field(description="URL of the web page to read")],
    objective: Annotated[
        Optional[str],
        Field(description="What information to extract (returns full content if not specified)"),
    ] = None,
) -> str:
    """Read and extract content from a web page. Returns the page content as text."""
    try:
        async with httpx.AsyncClient(
            timeout=settings.HTTP_TIMEOUT, follow_redirects=True
        ) as client:
            response = await client.get(url, headers={"User-Agent": USER_AGENT})
    except httpx.HTTPError as e:
        logger.warning("Fetching %s failed: %s", url, e)
        return f"Failed to read page: {e}"

    if response.is_error:
        return f"Failed to fetch page: {response.status_code} {response.reason_phrase}"

    content = html_to_text(response.text)[:MAX_PAGE_CHARS]
    if objective:
        return f"Content from {url} (looking for: {objective}):\n\n{content}"
    return f"Content from {url}:\n\n{content}"


@register_tool("task")
async def task(
    description: Annotated[str, Field(description="Short description of the task")],
    prompt: Annotated[str, Field(description="Detailed task instructions with context")],
) -> str:
    """
    Delegate a sub-task to be performed independently. Use for:
    - Complex multi-step tasks
    - Operations that produce lots of output not needed after completion
    - Changes across multiple application layers
    Include all necessary context and instructions in the prompt.
    """
    return (
        f'Task queued: "{description}"\n\nInstructions:\n{prompt}\n\n'
        "[Task execution would be handled by orchestration layer]"
    )


@register_tool("list_created_files")
async def list_created_files(ctx: ToolContext) -> str:
    """List all files created during this session"""
    if not ctx.files_created:
        return "No files created yet"
    return "\n".join(ctx.files_created)


@register_tool("run_tests")
async def run_tests(
    ctx: ToolContext,
    test_path: Annotated[
        Optional[str], Field(description="Specific test file or directory to run")
    ] = None,
) -> str:
    """Run tests for the project or specific test files."""
    args = shlex.split(settings.TEST_COMMAND)
    if test_path:
        args.append(test_path)
    result = await run_process(args, cwd=ctx.project_path)
    output = result.stdout + (f"\nErrors:\n{result.stderr}" if result.stderr else "")
    return output or f"Test command exited with code {result.returncode}"


@register_tool("git_status")
async def git_status(ctx: ToolContext) -> str:
    """Get the current git status of the repository"""
    result = await run_process(["git", "status", "--short"], cwd=ctx.project_path)
    if not result.ok:
        return f"Error: git status failed: {result.stderr.strip()}"
    return result.stdout or "Working tree clean"


@register_tool("git_diff")
async def git_diff(
    ctx: ToolContext,
    staged: Annotated[bool, Field(description="Show only staged changes")] = False,
    path: Annotated[Optional[str], Field(description="Specific file to diff")] = None,
) -> str:
    """Show git diff for uncommitted changes"""
    args = ["git", "diff"]
    if staged:
        args.append("--staged")
    if path:
        args.extend(["--", path])
    result = await run_process(args, cwd=ctx.project_path)
    if not result.ok:
        return f"Error: git diff failed: {result.stderr.strip()}"
    return result.stdout or "No changes"


@register_tool("mermaid")
async def mermaid(
    code: Annotated[str, Field(description="Mermaid diagram code")],
    title: Annotated[Optional[str], Field(description="Title for the diagram")] = None,
) -> str:
    """
    Generate a Mermaid diagram. Use proactively when explaining:
    - System architecture or component relationships
    - Workflows, data flows, user journeys
    - Algorithms or complex processes
    - Class hierarchies or entity relationships
    - State transitions or event sequences
    """
    block = f"```mermaid\n{code}\n```"
    return f"## {title}\n\n{block}" if title else block
