"""Git tools for agents that work on cloned repositories in the agent workspace."""

import logging
from pathlib import Path
from typing import (
    Annotated,
    Optional,
)

from pydantic import Field

from agentdeck.tools import (
    ToolContext,
    register_tool,
)
from agentdeck.tools.process import run_process

logger = logging.getLogger(__name__)

RepoPath = Annotated[str, Field(description="Local path to the repository")]


@register_tool("clone_repo")
async def clone_repo(
    ctx: ToolContext,
    repo_url: Annotated[str, Field(description="Git clone URL of the repository")],
    repo_name: Annotated[str, Field(description="Name for the local directory")],
    branch: Annotated[
        Optional[str], Field(description="Branch to clone (defaults to default branch)")
    ] = None,
) -> str:
    """Clone a git repository into the agent workspace. Returns the local path of the clone."""
    workspace = Path(ctx.workspace_dir)
    repo_path = workspace / repo_name
    try:
        workspace.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        return f"Error: could not create workspace {workspace}: {e}"

    if repo_path.exists():
        pulled = await run_process(["git", "pull"], cwd=str(repo_path))
        if not pulled.ok:
            return f"Repository exists at {repo_path} but pull failed: {pulled.stderr.strip()}"
        return f"Repository already exists at {repo_path}, pulled latest changes."

    args = ["git", "clone"]
    if branch:
        args.extend(["-b", branch])
    args.extend([repo_url, str(repo_path)])
    result = await run_process(args)
    if not result.ok:
        return f"Clone failed: {result.stderr}"
    logger.info("Cloned %s into %s", repo_url, repo_path)
    return f"Cloned {repo_url} to {repo_path}"


@register_tool("create_branch")
async def create_branch(
    ctx: ToolContext,
    repo_path: RepoPath,
    branch_name: Annotated[str, Field(description="Name of the new branch")],
) -> str:
    """Create and checkout a new git branch in a repository."""
    path = str(ctx.resolve_path(repo_path))
    result = await run_process(["git", "checkout", "-b", branch_name], cwd=path)
    if not result.ok:
        return f"Failed to create branch: {result.stderr}"
    return f'Created and checked out branch "{branch_name}" in {path}'


@register_tool("commit_changes")
async def commit_changes(
    ctx: ToolContext,
    repo_path: RepoPath,
    message: Annotated[str, Field(description="Commit message")],
) -> str:
    """Stage all changes and create a git commit."""
    path = str(ctx.resolve_path(repo_path))
    staged = await run_process(["git", "add", "-A"], cwd=path)
    if not staged.ok:
        return f"Commit failed: {staged.stderr}"
    result = await run_process(["git", "commit", "-m", message], cwd=path)
    if not result.ok:
        return f"Commit failed: {result.stderr or result.stdout}"
    return f"Committed: {result.stdout.strip()}"


@register_tool("push_branch")
async def push_branch(
    ctx: ToolContext,
    repo_path: RepoPath,
    branch_name: Annotated[str, Field(description="Branch name to push")],
) -> str:
    """Push a branch to the remote repository."""
    path = str(ctx.resolve_path(repo_path))
    result = await run_process(["git", "push", "-u", "origin", branch_name], cwd=path)
    if not result.ok:
        return f"Push failed: {result.stderr}"
    return f'Pushed branch "{branch_name}" to origin'


@register_tool("get_git_log")
async def get_git_log(
    ctx: ToolContext,
    repo_path: RepoPath,
    count: Annotated[int, Field(description="Number of log entries", ge=1)] = 10,
) -> str:
    """Get recent git log entries for a repository."""
    path = str(ctx.resolve_path(repo_path))
    result = await run_process(["git", "log", "--oneline", f"-{count}"], cwd=path)
    if not result.ok:
        return f"Error: git log failed: {result.stderr.strip()}"
    return result.stdout or "No commits found"


@register_tool("get_current_branch")
async def get_current_branch(ctx: ToolContext, repo_path: RepoPath) -> str:
    """Get the current branch name of a repository."""
    path = str(ctx.resolve_path(repo_path))
    result = await run_process(["git", "branch", "--show-current"], cwd=path)
    if not result.ok:
        return f"Error: could not read branch: {result.stderr.strip()}"
    return result.stdout.strip() or "Detached HEAD"
