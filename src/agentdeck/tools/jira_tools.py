"""JIRA Cloud tools (REST API v3)."""

import json
import logging
from typing import (
    Annotated,
    Any,
    Dict,
    Optional,
)

import httpx
from pydantic import Field

from agentdeck.common import json_object
from agentdeck.config import settings
from agentdeck.tools import register_tool

logger = logging.getLogger(__name__)

TicketKey = Annotated[str, Field(description="The JIRA ticket key (e.g., PROJ-123)")]


def missing_jira_credentials() -> Optional[str]:
    """Return an error line when the JIRA settings are incomplete, else None."""
    missing = [
        key
        for key in ("JIRA_BASE_URL", "JIRA_USER_EMAIL", "JIRA_API_TOKEN")
        if not getattr(settings, key)
    ]
    if missing:
        return f"Error: JIRA is not configured (missing {', '.join(missing)})"
    return None


def jira_client() -> httpx.AsyncClient:
    """Authenticated client rooted at the JIRA base URL."""
    return httpx.AsyncClient(
        base_url=settings.JIRA_BASE_URL.rstrip("/"),
        auth=(settings.JIRA_USER_EMAIL, settings.JIRA_API_TOKEN),
        headers={"Accept": "application/json"},
        timeout=settings.HTTP_TIMEOUT,
    )


def text_to_adf(text: str) -> Dict[str, Any]:
    """Wrap plain text in a single-paragraph Atlassian document."""
    return {
        "type": "doc",
        "version": 1,
        "content": [{"type": "paragraph", "content": [{"type": "text", "text": text}]}],
    }


@register_tool("get_jira_ticket")
async def get_jira_ticket(ticket_key: TicketKey) -> str:
    """
    Fetch a JIRA ticket by its key (e.g., PROJ-123). Returns the ticket summary, description,
    status, type, and assignee.
    """
    if error := missing_jira_credentials():
        return error
    try:
        async with jira_client() as client:
            response = await client.get(f"/rest/api/3/issue/{ticket_key}")
    except httpx.HTTPError as e:
        return f"Error fetching ticket: {e}"
    if response.is_error:
        return f"Failed to fetch ticket: {response.status_code} {response.reason_phrase}"

    data = json_object(response)
    if data is None:
        return f"Error: JIRA returned a non-JSON response for {ticket_key}"
    fields = data.get("fields") or {}
    summary = {
        "key": data.get("key"),
        "summary": fields.get("summary"),
        "description": fields.get("description"),
        "status": (fields.get("status") or {}).get("name"),
        "type": (fields.get("issuetype") or {}).get("name"),
        "assignee": (fields.get("assignee") or {}).get("displayName"),
        "priority": (fields.get("priority") or {}).get("name"),
    }
    return json.dumps(summary, indent=2)


@register_tool("add_jira_comment")
async def add_jira_comment(
    ticket_key: TicketKey,
    comment: Annotated[str, Field(description="Comment text to add")],
) -> str:
    """Add a comment to a JIRA ticket."""
    if error := missing_jira_credentials():
        return error
    try:
        async with jira_client() as client:
            response = await client.post(
                f"/rest/api/3/issue/{ticket_key}/comment", json={"body": text_to_adf(comment)}
            )
    except httpx.HTTPError as e:
        return f"Error adding comment: {e}"
    if response.is_error:
        return f"Failed to add comment: {response.status_code} {response.reason_phrase}"
    return f"Comment added to {ticket_key}"


@register_tool("transition_jira_ticket")
async def transition_jira_ticket(
    ticket_key: TicketKey,
    transition_name: Annotated[
        str, Field(description="Target status name (e.g., 'In Progress')")
    ],
) -> str:
    """Transition a JIRA ticket to a new status (e.g., 'In Progress', 'Done')."""
    if error := missing_jira_credentials():
        return error
    url = f"/rest/api/3/issue/{ticket_key}/transitions"
    try:
        async with jira_client() as client:
            listing = await client.get(url)
            if listing.is_error:
                return f"Failed to fetch transitions: {listing.status_code}"

            data = json_object(listing)
            if data is None:
                return f"Error: JIRA returned a non-JSON transition list for {ticket_key}"
            transitions = [t for t in data.get("transitions") or [] if isinstance(t, dict)]
            match = next(
                (t for t in transitions if t.get("name", "").lower() == transition_name.lower()),
                None,
            )
            if match is None:
                available = ", ".join(t.get("name", "") for t in transitions)
                return f'Transition "{transition_name}" not found. Available: {available}'

            response = await client.post(url, json={"transition": {"id": match["id"]}})
    except httpx.HTTPError as e:
        return f"Error transitioning ticket: {e}"
    if response.is_error:
        return f"Failed to transition: {response.status_code} {response.reason_phrase}"
    return f'Transitioned {ticket_key} to "{transition_name}"'
