"""
Match event dispatch to the external notification pipeline.

Delivery (push, email) belongs to the notification service. This module only
hands it a 'matched' event. Dispatch failures are logged and never fail the
swipe that produced the match.
"""

from __future__ import annotations

import httpx
from typing import Optional

from src.config import config
from src.models.interactions import Match
from src.utils.logging_config import logger


def _headers() -> dict:
    h = {"Content-Type": "application/json"}
    if config.SERVICE_TOKEN:
        h["Authorization"] = f"Bearer {config.SERVICE_TOKEN}"
    return h


def build_match_event(match: Match) -> dict:
    """Payload of the 'matched' event."""
    return {
        "event": "matched",
        "matchId": match.id,
        "profileIds": [match.profile1_id, match.profile2_id],
        "initiatedBy": match.initiated_by,
        "createdAt": match.created_at.isoformat() if match.created_at else None,
    }


class MatchNotifier:
    """Emits 'matched' events.

    With no webhook URL configured the event is only logged, which is the
    expected setup for local development and tests.
    """

    def __init__(self, webhook_url: Optional[str] = None, timeout: float = 5.0):
        self.webhook_url = webhook_url if webhook_url is not None else config.MATCH_WEBHOOK_URL
        self.timeout = timeout

    def notify_match(self, match: Match) -> bool:
        """Send the event. Returns True when it was accepted (or only logged)."""

        event = build_match_event(match)
        logger.info("matched event match_id=%s", match.id)

        if not self.webhook_url:
            return True

        try:
            with httpx.Client(timeout=self.timeout) as client:
                r = client.post(self.webhook_url, json=event, headers=_headers())
            if not r.is_success:
                logger.warning(
                    "Match event rejected: match_id=%s status=%s",
                    match.id,
                    r.status_code,
                )
                return False
            return True
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error("Match event dispatch failed: match_id=%s error=%s", match.id, e)
            return False
