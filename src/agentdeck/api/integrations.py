"""
JIRA and Bitbucket lookups for the dashboard.

- **GET /api/jira/tickets** - search tickets with JQL (default: the caller's open work).
- **GET /api/jira/tickets/{key}** - one ticket.
- **GET /api/repos** - repositories in the workspace, limited to ``DASHBOARD_REPOS``.

Missing credentials are reported as HTTP 500; upstream errors keep the upstream status code.
"""

import logging
from typing import (
    Any,
    Dict,
    List,
)

import httpx
from fastapi import (
    APIRouter,
    HTTPException,
    Query,
)

from agentdeck.agent.context import (
    TICKET_FIELDS,
    ticket_from_issue,
)
from agentdeck.api.models import (
    JiraTicket,
    RepoInfo,
    RepoList,
    TicketList,
)
from agentdeck.common import json_object
from agentdeck.config import settings
from agentdeck.tools.bitbucket_tools import (
    bitbucket_client,
    missing_bitbucket_credentials,
)
from agentdeck.tools.jira_tools import (
    jira_client,
    missing_jira_credentials,
)

logger = logging.getLogger(__name__)

DEFAULT_JQL = "assignee = currentUser() ORDER BY updated DESC"

router = APIRouter()


def _to_ticket(issue: Dict[str, Any]) -> JiraTicket:
    return JiraTicket(**ticket_from_issue(issue).model_dump())


async def _jira_get(path: str, params: Dict[str, Any], failure: str) -> Dict[str, Any]:
    if missing_jira_credentials():
        raise HTTPException(status_code=500, detail="JIRA configuration missing")
    try:
        async with jira_client() as client:
            response = await client.get(path, params=params)
    except httpx.HTTPError as exc:
        logger.error("%s: %s", failure, exc)
        raise HTTPException(status_code=500, detail=failure) from exc
    if response.is_error:
        raise HTTPException(
            status_code=response.status_code, detail=f"JIRA API error: {response.text}"
        )
    data = json_object(response)
    if data is None:
        logger.error("%s: JIRA returned a non-JSON response", failure)
        raise HTTPException(status_code=500, detail=failure)
    return data


@router.get("/api/jira/tickets", response_model=TicketList, summary="Search JIRA tickets")
async def list_tickets(
    jql: str = Query(DEFAULT_JQL, description="JQL query"),
    max_results: int = Query(50, alias="maxResults", ge=1, le=100),
) -> TicketList:
    """Search JIRA and return the matching tickets."""
    data = await _jira_get(
        "/rest/api/3/search/jql",
        {"jql": jql, "maxResults": max_results, "fields": TICKET_FIELDS},
        "Failed to fetch JIRA tickets",
    )
    tickets = [_to_ticket(issue) for issue in data.get("issues") or [] if isinstance(issue, dict)]
    total = data.get("total")
    return TicketList(tickets=tickets, total=total if isinstance(total, int) else len(tickets))


@router.get("/api/jira/tickets/{key}", response_model=JiraTicket, summary="Get a JIRA ticket")
async def get_ticket(key: str) -> JiraTicket:
    """Fetch a single ticket by key."""
    issue = await _jira_get(
        f"/rest/api/3/issue/{key}", {"fields": TICKET_FIELDS}, "Failed to fetch JIRA ticket"
    )
    return _to_ticket(issue)


def filter_repos(repos: List[RepoInfo], names: List[str]) -> List[RepoInfo]:
    """Keep the repositories named in *names*; an empty list keeps them all."""
    if not names:
        return repos
    wanted = set(names)
    return [repo for repo in repos if repo.name in wanted]


@router.get(
    "/api/repos",
    response_model=RepoList,
    response_model_by_alias=True,
    summary="List dashboard repositories",
)
async def list_repositories() -> RepoList:
    """List the workspace's repositories that the dashboard offers as run targets."""
    if missing_bitbucket_credentials():
        raise HTTPException(status_code=500, detail="Bitbucket configuration missing")
    failure = "Failed to fetch repositories"
    try:
        async with bitbucket_client() as client:
            response = await client.get("", params={"pagelen": "100"})
    except httpx.HTTPError as exc:
        logger.error("%s: %s", failure, exc)
        raise HTTPException(status_code=500, detail=failure) from exc
    if response.is_error:
        raise HTTPException(
            status_code=response.status_code, detail=f"Bitbucket API error: {response.text}"
        )
    data = json_object(response)
    if data is None:
        logger.error("%s: Bitbucket returned a non-JSON response", failure)
        raise HTTPException(status_code=500, detail=failure)

    repos = []
    for repo in data.get("values") or []:
        if not isinstance(repo, dict):
            continue
        clone_links = (repo.get("links") or {}).get("clone") or []
        clone_url = next(
            (link.get("href", "") for link in clone_links if link.get("name") == "https"), ""
        )
        repos.append(
            RepoInfo(slug=repo.get("slug", ""), name=repo.get("name", ""), clone_url=clone_url)
        )
    return RepoList(repos=filter_repos(repos, settings.DASHBOARD_REPOS))
