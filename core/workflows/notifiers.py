"""Notifier implementations used by hosts of :mod:`core.workflows.rejection`."""
from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class CollectingNotifier:
    """Keeps notices in memory so the host can return or push them later."""

    def __init__(self) -> None:
        self.notices: list[dict] = []

    def error(self, message: str) -> None:
        logger.info("validation notice: %s", message)
        self.notices.append({'level': 'error', 'message': message})

    @property
    def first_message(self) -> str | None:
        return self.notices[0]['message'] if self.notices else None

    def drain(self) -> list[dict]:
        notices, self.notices = self.notices, []
        return notices
