"""Configuration settings for the application."""

from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # Define the settings with default values and types
    # These will be loaded from environment variables or a .env file if not provided
    API_PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical
    CORS_ORIGINS: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    # LLM Configuration
    PLANNER: str = "anthropic"  # Options: anthropic, openai
    ANTHROPIC_API_KEY: str | None = None
    ANTHROPIC_MODEL: str = "claude-haiku-4-5"
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    MODEL_MAX_TOKENS: int = 8192
    MODEL_TIMEOUT: float = 120.0

    # Agent loop
    WEB_MAX_STEPS: int = 50
    CLI_MAX_STEPS: int = 10

    # Tools
    CONTEXT_DIR: str = "./context_files"
    AGENT_WORKSPACE_DIR: str = "/tmp/agent-workspaces"
    TEST_COMMAND: str = "pytest -q"
    HTTP_TIMEOUT: float = 30.0
    TOOL_TIMEOUT: float = 600.0

    # Atlassian / Bitbucket
    JIRA_BASE_URL: str | None = None
    JIRA_USER_EMAIL: str | None = None
    JIRA_API_TOKEN: str | None = None
    BITBUCKET_BASE_URL: str = "https://api.bitbucket.org/2.0"
    BITBUCKET_USERNAME: str | None = None
    BITBUCKET_APP_PASSWORD: str | None = None
    BITBUCKET_WORKSPACE: str | None = None
    # Repositories the dashboard offers as run targets; empty lists every repository
    DASHBOARD_REPOS: List[str] = [
        "docket",
        "docket-customer-portal",
        "docket-mobile",
        "docket-forms",
        "docket-survcart-app",
        "docket-embed",
        "docket-admin",
        "docket-platform",
    ]

    class Config:
        """Configuration for Pydantic settings."""

        # Load environment variables from a .env file
        env_file = ".env"
        env_file_encoding = "utf-8"


# Never logged
SECRET_SETTINGS = {
    "ANTHROPIC_API_KEY",
    "OPENAI_API_KEY",
    "JIRA_API_TOKEN",
    "BITBUCKET_APP_PASSWORD",
}

settings = Settings()
