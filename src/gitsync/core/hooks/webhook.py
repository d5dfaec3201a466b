"""
Webhook: notify a remote HTTP endpoint after each publication.

The request carries the publication in headers:

- Gitsync-Hash: published commit hash
- Gitsync-Worktree: path of the published worktree

With ``success_status = -1`` any response counts as delivered (fire and
forget); otherwise only the exact configured status does. Connection
errors and timeouts are failed attempts.
"""

import logging
import time
from datetime import datetime

import httpx

from gitsync.core.config.models import WebhookConfig
from gitsync.core.hooks.models import HookRecord, HookResult

logger = logging.getLogger(__name__)


class Webhook:
    """
    Hook that calls a URL.

    Example:
        >>> hook = Webhook(WebhookConfig(url="http://deployer/refresh"))
        >>> result = hook.deliver(record)
        >>> result.status_code
        200
    """

    def __init__(self, config: WebhookConfig, client: httpx.Client | None = None):
        """
        Initialize the webhook.

        Args:
            config: URL, method, expected status and timeout
            client: HTTP client to send requests with (one is created if omitted)
        """
        self.config = config
        self._client = client or httpx.Client()
        self._owns_client = client is None

    @property
    def name(self) -> str:
        return self.config.display_name

    def deliver(self, record: HookRecord) -> HookResult:
        """
        Send the request once.

        Args:
            record: The delivery being attempted

        Returns:
            HookResult with the response status
        """
        headers = {
            "Gitsync-Hash": record.identifier,
            "Gitsync-Worktree": str(record.worktree_path),
        }

        start_time = time.time()
        try:
            response = self._client.request(
                self.config.method,
                self.config.url,
                headers=headers,
                timeout=self.config.timeout_seconds,
            )
        except httpx.HTTPError as e:
            return HookResult(
                success=False,
                duration_seconds=time.time() - start_time,
                timestamp=datetime.now(),
                error_message=f"{type(e).__name__}: {e}",
            )

        expected = self.config.success_status
        success = expected == -1 or response.status_code == expected
        logger.debug(f"{self.name} answered {response.status_code}")

        return HookResult(
            success=success,
            status_code=response.status_code,
            output=response.text[:1024],
            duration_seconds=time.time() - start_time,
            timestamp=datetime.now(),
            error_message=None if success else f"status {response.status_code}, want {expected}",
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
