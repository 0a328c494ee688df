"""
Agent profile table.

A profile names an agent and fixes its base system prompt, the tools it may use and the context
files bundled into its prompt.  Profiles are static and defined once here.
"""

import logging
from dataclasses import dataclass
from typing import (
    Dict,
    FrozenSet,
    Iterable,
    List,
    Tuple,
)

logger = logging.getLogger(__name__)


class UnknownAgentError(ValueError):
    """Raised when a profile name is not in the table."""


@dataclass(frozen=True)
class AgentProfile:
    name: str
    base_prompt: str
    allowed_tools: FrozenSet[str]
    context_file_names: Tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Tool groups
# ---------------------------------------------------------------------------
CALCULATOR_TOOLS = frozenset({"add", "subtract", "multiply", "divide"})

FILE_TOOLS = frozenset(
    {
        "create_file",
        "edit_file",
        "undo_edit",
        "read_file",
        "bash",
        "glob",
        "grep",
        "finder",
        "delete_file",
        "create_directory",
        "list_directory",
        "delete_directory",
        "rename_file",
        "copy_file",
        "copy_directory",
    }
)

CODING_TOOLS = frozenset(
    {
        "web_search",
        "read_web_page",
        "task",
        "list_created_files",
        "run_tests",
        "git_status",
        "git_diff",
        "mermaid",
    }
)

GIT_TOOLS = frozenset(
    {
        "clone_repo",
        "create_branch",
        "commit_changes",
        "push_branch",
        "get_git_log",
        "get_current_branch",
    }
)

JIRA_TOOLS = frozenset({"get_jira_ticket", "add_jira_comment", "transition_jira_ticket"})

BITBUCKET_TOOLS = frozenset({"create_pull_request", "list_repos", "read_remote_file"})

WEB_TOOLS = frozenset({"web_search", "read_web_page"})

TICKET_WORKFLOW_TOOLS = FILE_TOOLS | GIT_TOOLS | JIRA_TOOLS | BITBUCKET_TOOLS | WEB_TOOLS


# ---------------------------------------------------------------------------
# Base prompts
# ---------------------------------------------------------------------------
_CODING_PROMPT = (
    "You are a coding agent. You are responsible for coding the project including writing, "
    "deleting, moving and refactoring files and code as requested by the user. Make use of "
    "available tools to help you with your tasks. Do NOT generate markdown files unless "
    "specifically requested by the user."
)

_CALCULATOR_PROMPT = (
    "You are a calculator agent. You are responsible for solving equations provided by the user. "
    "You need to pick up on the user's intent for the given equation and recognize mathematical "
    "operations and symbols, whether written as text or symbols."
)

_PRACTICE_PROMPT = (
    "You are a coding agent. You are responsible for coding the project including writing, "
    "deleting, moving and refactoring files and code as requested by the user specifically for "
    "this code base. Make use of available tools to help you with your tasks. Whenever you make "
    "changes, make sure to update the AGENT_PRACTICE_OVERVIEW.md file in the context files "
    "directory."
)


def _workflow_prompt(role: str, work: str, branch_hint: str, verb: str) -> str:
    return (
        f"You are a {role} agent. {work} Your workflow is:\n"
        "1. Analyze the ticket description provided in your context\n"
        "2. Clone the relevant repository using the clone_repo tool\n"
        f"3. Create a new branch named after the JIRA ticket ({branch_hint})\n"
        "4. Investigate the codebase using read_file, grep, and finder tools\n"
        f"5. {verb} using edit_file or create_file\n"
        "6. Commit your changes with a descriptive message referencing the ticket\n"
        "7. Push the branch and create a pull request on Bitbucket\n"
        "8. Add a comment to the JIRA ticket summarizing what was done\n\n"
        "Be thorough in your investigation before making changes."
    )


_BUGFIX_PROMPT = _workflow_prompt(
    "bugfix",
    "You investigate and fix bugs based on JIRA ticket descriptions.",
    "e.g., bugfix/PROJ-123",
    "Make the necessary code changes",
)

_TICKET_PROMPT = _workflow_prompt(
    "ticket",
    "You handle JIRA tickets of any type (tasks, stories, bugs, sub-tasks) by implementing the "
    "work described in the ticket.",
    "e.g., feature/PROJ-123 or bugfix/PROJ-123 depending on ticket type",
    "Implement the required changes",
)


PROFILES: Dict[str, AgentProfile] = {
    profile.name: profile
    for profile in (
        AgentProfile(
            name="coding",
            base_prompt=_CODING_PROMPT,
            allowed_tools=CODING_TOOLS | FILE_TOOLS,
            context_file_names=("COMPONENT_GUIDELINES.md",),
        ),
        AgentProfile(
            name="calculator",
            base_prompt=_CALCULATOR_PROMPT,
            allowed_tools=CALCULATOR_TOOLS,
        ),
        AgentProfile(
            name="coding_practice_agent",
            base_prompt=_PRACTICE_PROMPT,
            allowed_tools=CODING_TOOLS | FILE_TOOLS,
            context_file_names=("AGENT_PRACTICE_OVERVIEW.md", "COMPONENT_GUIDELINES.md"),
        ),
        AgentProfile(
            name="bugfix",
            base_prompt=_BUGFIX_PROMPT,
            allowed_tools=TICKET_WORKFLOW_TOOLS,
        ),
        AgentProfile(
            name="ticket",
            base_prompt=_TICKET_PROMPT,
            allowed_tools=TICKET_WORKFLOW_TOOLS,
        ),
    )
}


def get_profile(name: str) -> AgentProfile:
    """
    Look up a profile by name.

    Raises
    ------
    UnknownAgentError
        If *name* is not one of :data:`PROFILES`.
    """
    try:
        return PROFILES[name]
    except KeyError as exc:
        raise UnknownAgentError(
            f"Unknown agent '{name}'. Available agents: {', '.join(sorted(PROFILES))}"
        ) from exc


REPO_CONTEXT_FILES: Dict[str, Tuple[str, ...]] = {
    "docket": ("DOCKET_REPO_OVERVIEW.md",),
    "docket-platform": ("DOCKET-PLATFORM_REPO_OVERVIEW.md",),
    "docket-customer-portal": ("DOCKET-CUSTOMER-PORTAL_REPO_OVERVIEW.md",),
}


def get_repo_context_files(repo_slugs: Iterable[str]) -> List[str]:
    """Overview file names for *repo_slugs*, in order; unknown slugs contribute nothing."""
    return [name for slug in repo_slugs for name in REPO_CONTEXT_FILES.get(slug, ())]
