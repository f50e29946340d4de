# notify.py
from __future__ import annotations

import json
import time
import urllib.error
import urllib.request

from loguru import logger

from .errors import NotificationError


class WebhookNotifier:
    """Posts {"text", "timestamp"} JSON to a webhook URL."""

    def __init__(self, timeout: float = 15.0):
        self.timeout = timeout

    def notify_completion(self, webhook_url: str, summary: str) -> None:
        """
        Send one notification.

        Raises:
            NotificationError: on network errors or a 4xx/5xx response
        """
        if not webhook_url:
            raise NotificationError(url="", message="no webhook URL configured")

        payload = {"text": summary, "timestamp": int(time.time())}
        req = urllib.request.Request(
            webhook_url,
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )

        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                response.read()
        except urllib.error.HTTPError as e:
            error_body = e.read().decode("utf-8", errors="replace") if e.fp else ""
            raise NotificationError(url=webhook_url, message=f"status {e.code}: {error_body}".strip()) from e
        except (urllib.error.URLError, OSError) as e:
            raise NotificationError(url=webhook_url, message=str(e)) from e

        logger.debug(f"[notify] sent notification to {webhook_url}")
