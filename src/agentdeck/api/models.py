"""
Pydantic models for agentdeck API requests and responses.
This module defines the request and response schemas used by the agentdeck API.
"""

from typing import (
    List,
    Optional,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
)


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RunAgentRequest(_CamelModel):
    """Request to start an agent run; the response is an SSE stream of chunks."""

    agent: str = Field(..., description="Agent profile name")
    user_input: str = Field(..., alias="userInput", description="Instruction for the agent")
    project_path: Optional[str] = Field(
        None, alias="projectPath", description="Project directory the tools work in"
    )
    system_context: Optional[str] = Field(
        None, alias="systemContext", description="Extra context appended to the system prompt"
    )
    repo_slugs: List[str] = Field(
        default_factory=list, alias="repoSlugs", description="Repositories the run targets"
    )
    ticket_key: Optional[str] = Field(
        None, alias="ticketKey", description="JIRA ticket to load into the context"
    )
    max_steps: Optional[int] = Field(
        None, alias="maxSteps", ge=1, description="Step bound (default: WEB_MAX_STEPS)"
    )
    debug: bool = False


class AgentInfo(BaseModel):
    """One agent profile as listed by the API."""

    name: str
    tools: List[str]


class CancelResponse(_CamelModel):
    """Acknowledgement of a cancel request."""

    run_id: str = Field(..., alias="runId")
    cancelled: bool


class JiraTicket(BaseModel):
    """A JIRA ticket as shown on the dashboard."""

    key: str
    summary: str
    description: str
    status: str
    type: str
    priority: str
    assignee: str
    created: str
    updated: str
    url: str


class TicketList(BaseModel):
    tickets: List[JiraTicket]
    total: int


class RepoInfo(_CamelModel):
    """A Bitbucket repository the dashboard can target."""

    slug: str
    name: str
    clone_url: str = Field("", alias="cloneUrl")


class RepoList(BaseModel):
    repos: List[RepoInfo]
