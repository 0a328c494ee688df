"""Bitbucket Cloud tools (REST API 2.0)."""

import logging
from typing import (
    Annotated,
    Optional,
)

import httpx
from pydantic import Field

from agentdeck.common import json_object
from agentdeck.config import settings
from agentdeck.tools import register_tool

logger = logging.getLogger(__name__)

MAX_REMOTE_FILE_CHARS = 50_000


def missing_bitbucket_credentials() -> Optional[str]:
    missing = [
        key
        for key in ("BITBUCKET_USERNAME", "BITBUCKET_APP_PASSWORD", "BITBUCKET_WORKSPACE")
        if not getattr(settings, key)
    ]
    if missing:
        return f"Error: Bitbucket is not configured (missing {', '.join(missing)})"
    return None


def bitbucket_client() -> httpx.AsyncClient:
    """Authenticated client rooted at the configured workspace's repositories."""
    base = settings.BITBUCKET_BASE_URL.rstrip("/")
    return httpx.AsyncClient(
        base_url=f"{base}/repositories/{settings.BITBUCKET_WORKSPACE}",
        auth=(settings.BITBUCKET_USERNAME, settings.BITBUCKET_APP_PASSWORD),
        headers={"Accept": "application/json"},
        timeout=settings.HTTP_TIMEOUT,
    )


@register_tool("create_pull_request")
async def create_pull_request(
    repo_slug: Annotated[str, Field(description="Repository slug (name)")],
    title: Annotated[str, Field(description="PR title")],
    description: Annotated[str, Field(description="PR description")],
    source_branch: Annotated[str, Field(description="Source branch name")],
    destination_branch: Annotated[
        str, Field(description="Destination branch (defaults to main)")
    ] = "main",
) -> str:
    """Create a pull request on Bitbucket for a repository."""
    if error := missing_bitbucket_credentials():
        return error
    payload = {
        "title": title,
        "description": description,
        "source": {"branch": {"name": source_branch}},
        "destination": {"branch": {"name": destination_branch}},
        "close_source_branch": True,
    }
    try:
        async with bitbucket_client() as client:
            response = await client.post(f"/{repo_slug}/pullrequests", json=payload)
    except httpx.HTTPError as e:
        return f"Error creating PR: {e}"
    if response.is_error:
        return f"Failed to create PR: {response.status_code} - {response.text}"

    data = json_object(response)
    if data is None:
        return f"Error: Bitbucket returned a non-JSON response for the new PR on {repo_slug}"
    href = ((data.get("links") or {}).get("html") or {}).get("href") or "URL not available"
    logger.info("Created pull request #%s on %s", data.get("id"), repo_slug)
    return f"Pull request #{data.get('id')} created: {href}"


@register_tool("list_repos")
async def list_repos(
    query: Annotated[
        Optional[str], Field(description="Filter repos by name (partial match)")
    ] = None,
) -> str:
    """List repositories in the Bitbucket workspace. Optionally filter by name."""
    if error := missing_bitbucket_credentials():
        return error
    params = {"pagelen": "50"}
    if query:
        params["q"] = f'name~"{query}"'
    try:
        async with bitbucket_client() as client:
            response = await client.get("", params=params)
    except httpx.HTTPError as e:
        return f"Error listing repos: {e}"
    if response.is_error:
        return f"Failed to list repos: {response.status_code} {response.reason_phrase}"

    data = json_object(response)
    if data is None:
        return "Error: Bitbucket returned a non-JSON repository list"
    lines = []
    for repo in data.get("values") or []:
        if not isinstance(repo, dict):
            continue
        clone_links = (repo.get("links") or {}).get("clone") or []
        clone_url = next((link["href"] for link in clone_links if link.get("name") == "https"), "")
        lines.append(f"{repo.get('name')} ({repo.get('slug')}) - {clone_url}")
    return "\n".join(lines) if lines else "No repositories found"


@register_tool("read_remote_file")
async def read_remote_file(
    repo_slug: Annotated[str, Field(description="Repository slug")],
    file_path: Annotated[str, Field(description="Path to the file in the repository")],
    branch: Annotated[str, Field(description="Branch to read from")] = "main",
) -> str:
    """Read a file from a Bitbucket repository without cloning it."""
    if error := missing_bitbucket_credentials():
        return error
    try:
        async with bitbucket_client() as client:
            response = await client.get(f"/{repo_slug}/src/{branch}/{file_path.lstrip('/')}")
    except httpx.HTTPError as e:
        return f"Error reading file: {e}"
    if response.is_error:
        return f"Failed to read file: {response.status_code} {response.reason_phrase}"
    return response.text[:MAX_REMOTE_FILE_CHARS]
