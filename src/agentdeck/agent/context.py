"""
Context assembler.

Builds the system prompt for a run from the profile's base prompt, bundled context files, the
project's own copies of those files, repository overview files, an optional JIRA ticket and any
extra context supplied by the caller.  Nothing here ever blocks a run: files that cannot be
loaded and tickets that cannot be fetched are reported in :attr:`LoadedContext.errors`.
"""

import json
import logging
from dataclasses import (
    dataclass,
    field,
)
from pathlib import Path
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Sequence,
    Tuple,
)

import httpx
from pydantic import BaseModel

from agentdeck.agent.profiles import (
    AgentProfile,
    get_repo_context_files,
)
from agentdeck.config import settings
from agentdeck.tools.jira_tools import (
    jira_client,
    missing_jira_credentials,
)

logger = logging.getLogger(__name__)

TICKET_FIELDS = "summary,description,status,issuetype,priority,assignee,created,updated"


@dataclass
class LoadedContext:
    system_prompt: str
    loaded_files: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


class TicketInfo(BaseModel):
    key: str
    summary: str = ""
    status: str = ""
    priority: str = ""
    type: str = ""
    description: str = ""
    assignee: str = "Unassigned"
    created: str = ""
    updated: str = ""
    url: str = ""


# ---------------------------------------------------------------------------
# Context files
# ---------------------------------------------------------------------------
def _load_files(
    directory: Path, file_names: Sequence[str], errors: List[str]
) -> List[Tuple[str, str]]:
    loaded: List[Tuple[str, str]] = []
    for name in file_names:
        path = directory / name
        try:
            content = path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            errors.append(f"Context file not found: {path}")
            continue
        except (OSError, ValueError) as e:
            errors.append(f"Could not read context file {path}: {e}")
            continue
        if not content:
            errors.append(f"Context file is empty: {path}")
            continue
        loaded.append((name, content))
    return loaded


def format_context_section(files: Sequence[Tuple[str, str]]) -> str:
    if not files:
        return ""
    sections = [f"## {name}\n\n{content}" for name, content in files]
    return "\n\n# Project Context\n\n" + "\n\n---\n\n".join(sections)


# ---------------------------------------------------------------------------
# JIRA ticket
# ---------------------------------------------------------------------------
def render_description(description: Any) -> str:
    """
    Flatten a JIRA description to plain text.

    Atlassian document format bodies become one paragraph per top-level block; plain strings pass
    through; anything else is dumped as JSON.
    """
    if not description:
        return ""
    if isinstance(description, str):
        return description
    if isinstance(description, dict) and isinstance(description.get("content"), list):
        paragraphs = []
        for block in description["content"]:
            inline = block.get("content") if isinstance(block, dict) else None
            if not inline:
                continue
            text = "".join(node.get("text", "") for node in inline if isinstance(node, dict))
            if text:
                paragraphs.append(text)
        return "\n\n".join(paragraphs)
    return json.dumps(description, indent=2)


def _name_of(value: Any, default: str = "") -> str:
    if isinstance(value, dict):
        return value.get("name") or value.get("displayName") or default
    return default


def ticket_from_issue(issue: Dict[str, Any], default_key: str = "") -> TicketInfo:
    """Map a JIRA issue resource to a :class:`TicketInfo`."""
    fields = issue.get("fields")
    if not isinstance(fields, dict):
        fields = {}
    key = issue.get("key") or default_key
    return TicketInfo(
        key=key,
        summary=fields.get("summary") or "",
        status=_name_of(fields.get("status")),
        priority=_name_of(fields.get("priority")),
        type=_name_of(fields.get("issuetype")),
        description=render_description(fields.get("description")),
        assignee=_name_of(fields.get("assignee"), "Unassigned"),
        created=fields.get("created") or "",
        updated=fields.get("updated") or "",
        url=f"{settings.JIRA_BASE_URL.rstrip('/')}/browse/{key}",
    )


async def fetch_ticket_info(ticket_key: str) -> Optional[TicketInfo]:
    """Fetch *ticket_key* from JIRA; returns None when unconfigured or on any HTTP failure."""
    if missing_jira_credentials():
        return None
    try:
        async with jira_client() as client:
            response = await client.get(
                f"/rest/api/3/issue/{ticket_key}", params={"fields": TICKET_FIELDS}
            )
            response.raise_for_status()
            issue = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("Could not fetch ticket %s: %s", ticket_key, e)
        return None
    if not isinstance(issue, dict):
        logger.warning("JIRA returned a non-object body for ticket %s", ticket_key)
        return None
    return ticket_from_issue(issue, ticket_key)


def format_ticket_context(ticket: TicketInfo, repo_slugs: Sequence[str] = ()) -> str:
    lines = [
        f"# Ticket Context: {ticket.key}",
        "",
        f"Summary: {ticket.summary}",
        f"Type: {ticket.type}",
        f"Priority: {ticket.priority}",
        f"Status: {ticket.status}",
        f"URL: {ticket.url}",
    ]
    if repo_slugs:
        lines.append(f"Target Repositories: {', '.join(repo_slugs)}")
    lines.extend(["", "Description:", ticket.description])
    return "\n".join(lines).strip()


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------
async def build_system_prompt(
    profile: AgentProfile,
    *,
    project_path: Optional[str] = None,
    repo_slugs: Sequence[str] = (),
    ticket_key: Optional[str] = None,
    extra_context: Optional[str] = None,
) -> LoadedContext:
    """
    Assemble the system prompt for *profile*.

    Parameters
    ----------
    profile:
        The agent profile; supplies the base prompt and the context file names.
    project_path:
        Directory searched for project copies of the profile's context files.
    repo_slugs:
        Repositories whose overview files are added from the context directory.
    ticket_key:
        JIRA ticket to fetch and append.
    extra_context:
        Free-form text appended under ``# Additional Context``.

    Returns
    -------
    LoadedContext
        The prompt, the names of the files that were loaded and any non-fatal errors.
    """
    errors: List[str] = []
    context_dir = Path(settings.CONTEXT_DIR)

    files = _load_files(context_dir, profile.context_file_names, errors)
    if project_path:
        files += _load_files(Path(project_path), profile.context_file_names, errors)
    repo_files = get_repo_context_files(repo_slugs)
    if repo_files:
        files += _load_files(context_dir, repo_files, errors)

    prompt = profile.base_prompt + format_context_section(files)

    if ticket_key:
        ticket = await fetch_ticket_info(ticket_key)
        if ticket is None:
            errors.append(f"Could not fetch JIRA ticket {ticket_key}")
        else:
            prompt += "\n\n" + format_ticket_context(ticket, repo_slugs)

    if extra_context and extra_context.strip():
        prompt += f"\n\n# Additional Context\n\n{extra_context.strip()}"

    return LoadedContext(
        system_prompt=prompt,
        loaded_files=[name for name, _ in files],
        errors=errors,
    )
