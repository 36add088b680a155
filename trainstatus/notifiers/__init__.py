"""
Notification channels for intersection status changes.

StatusChangeNotifier is registered as a controller view and posts to the
configured webhooks whenever the decided status flips between clear and
blocked. Checking, Error and Unknown snapshots don't count as a change.

Usage:
    from trainstatus.notifiers import StatusChangeNotifier

    controller.subscribe(StatusChangeNotifier(settings.webhook_urls))
"""

import asyncio
import logging
from functools import partial

from trainstatus.status import Status, StatusSnapshot

from .messages import STATUS_MESSAGES
from .webhooks import send_webhooks

__all__ = [
    'StatusChangeNotifier',
    'send_webhooks',
    'STATUS_MESSAGES',
]

logger = logging.getLogger(__name__)

_DECIDED = (Status.CLEAR, Status.BLOCKED)


def _log_dispatch_failure(future):
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.error(f"Webhook dispatch failed: {type(error).__name__}: {error}", exc_info=error)


class StatusChangeNotifier:
    """Controller view that sends webhooks on clear/blocked transitions."""

    def __init__(self, urls, send=send_webhooks):
        self.urls = tuple(urls)
        self._send = send
        self.last_status = None

    def __call__(self, snapshot: StatusSnapshot):
        """Returns the executor future when a send was dispatched from the event loop."""
        if snapshot.status not in _DECIDED:
            return None

        previous = self.last_status
        self.last_status = snapshot.status
        # First decision after startup isn't a change
        if previous is None or previous == snapshot.status or not self.urls:
            return None

        logger.info(f"Status changed: {previous.value} -> {snapshot.status.value}")
        job = partial(
            self._send,
            self.urls,
            snapshot.status.value,
            previous_status=previous.value,
            reason=snapshot.reason,
            timestamp=snapshot.last_checked_at.isoformat() if snapshot.last_checked_at else None,
        )
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            job()
            return None
        # Webhooks use blocking requests; keep them off the event loop
        future = loop.run_in_executor(None, job)
        future.add_done_callback(_log_dispatch_failure)
        return future
