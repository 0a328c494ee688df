"""
agentdeck entry point.

This file handles startup concerns (arg-parsing, env setup, logging) and launches the appropriate
interface (API server or terminal client).
"""

import argparse
import logging
import sys

from agentdeck.agent.profiles import PROFILES
from agentdeck.api.app import run_api
from agentdeck.config import (
    SECRET_SETTINGS,
    settings,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _init_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        stream=sys.stderr,
    )
    # Keep per-request client logs out of the agent output
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def main(argv: list[str] | None = None) -> None:
    """
    Main entry point for the agentdeck application.

    This function sets up the command-line interface, initializes logging, and starts the
    application in either API or CLI mode.
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = argparse.ArgumentParser(description="Run the agentdeck agent harness")
    parser.add_argument(
        "--mode",
        choices=["api", "cli"],
        type=str.lower,
        default="api",
        help="Launch the REST API or the terminal client (default: api)",
    )
    parser.add_argument(
        "--agent",
        choices=sorted(PROFILES),
        default="coding",
        help="Agent profile used by the terminal client (default: %(default)s)",
    )
    parser.add_argument(
        "--remote",
        action="store_true",
        help="In CLI mode, start the API in the background and stream runs through it",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        type=str.lower,
        default=settings.LOG_LEVEL,
        help="Logging level (default from env: %(default)s)",
    )
    args = parser.parse_args(argv)

    # Override log level setting with command-line argument
    settings.LOG_LEVEL = args.log_level

    _init_logging(settings.LOG_LEVEL)

    logger.info("Starting agentdeck [%s mode]", args.mode)
    logger.debug("Settings: %s", settings.model_dump(exclude=SECRET_SETTINGS))

    if args.mode == "api":
        run_api(host="0.0.0.0", port=settings.API_PORT, reload=settings.DEBUG)
        return

    if args.remote:
        # Lazy import to avoid threading setup if not needed
        import threading  # pylint: disable=import-outside-toplevel

        # Start API server in a separate thread
        api_thread = threading.Thread(
            target=run_api,
            kwargs={
                "host": "127.0.0.1",
                "port": settings.API_PORT,
                "reload": False,  # Reload doesn't work well with threading
                "log_level": "warning",
            },
            daemon=True,
        )
        api_thread.start()

    # Lazy import to avoid CLI dependencies if not needed
    from agentdeck.client.cli import (  # pylint: disable=import-outside-toplevel
        run_cli,
    )

    run_cli(agent=args.agent, remote=args.remote)


if __name__ == "__main__":
    main()
