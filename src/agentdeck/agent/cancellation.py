"""Cooperative cancellation of an in-progress agent run."""

import logging

logger = logging.getLogger(__name__)


class CancellationController:
    """
    One-way stop signal shared between the caller and the agent loop.

    The loop polls :attr:`cancelled` at its suspension points; nothing is interrupted mid-tool.
    Once the run has reached a terminal state (:meth:`mark_done`), further cancel requests are
    ignored.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._done = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def done(self) -> bool:
        return self._done

    def cancel(self) -> bool:
        """Request cancellation; returns True only for the request that took effect."""
        if self._done or self._cancelled:
            return False
        logger.info("Cancellation requested")
        self._cancelled = True
        return True

    def mark_done(self) -> None:
        self._done = True
