# src/sprite_tasks/network/notifier.py

"""
Wake notifiers.

A wake asks a peer to run check_for_tasks() now instead of waiting for its
next poll. Delivery is best-effort: no acknowledgement, no retry, and a
failure is only logged. The receiving side is idempotent, so duplicate or
missing wakes are harmless.
"""

from __future__ import annotations

import logging
import subprocess
import threading
from collections.abc import Callable

import httpx

logger = logging.getLogger(__name__)

CHECK_PATH = "/api/distributed-tasks/check"
DEFAULT_WAKE_URL_TEMPLATE = "http://{node}:8081" + CHECK_PATH


def _spawn(name: str, fn: Callable[[], None], background: bool) -> None:
    if not background:
        fn()
        return
    threading.Thread(target=fn, name=name, daemon=True).start()


class HttpNotifier:
    """POST to the peer's check endpoint, e.g. http://node-b:8081/api/distributed-tasks/check."""

    def __init__(
        self,
        url_template: str = DEFAULT_WAKE_URL_TEMPLATE,
        *,
        timeout_seconds: float = 5.0,
        background: bool = True,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._url_template = url_template
        self._timeout = httpx.Timeout(timeout_seconds, connect=min(timeout_seconds, 3.0))
        self._background = background
        self._transport = transport

    def url_for(self, node_name: str) -> str:
        return self._url_template.format(node=node_name)

    def _post(self, node_name: str) -> None:
        url = self.url_for(node_name)
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                resp = client.post(url)
            if resp.is_success:
                logger.info("Notified %s to check for tasks", node_name)
            else:
                logger.warning("Wake %s answered HTTP %s", node_name, resp.status_code)
        except httpx.HTTPError as exc:
            logger.warning("Failed to wake %s via %s: %s", node_name, url, exc)

    def wake(self, node_name: str) -> None:
        _spawn(f"wake-{node_name}", lambda: self._post(node_name), self._background)


class SpriteExecNotifier:
    """
    Wake through the sprite CLI: run curl on the target against its local check endpoint.

    Equivalent to: sprite -s <node> exec -- curl -X POST http://localhost:8081/api/distributed-tasks/check
    """

    def __init__(
        self,
        *,
        sprite_bin: str = "sprite",
        local_url: str = "http://localhost:8081" + CHECK_PATH,
        timeout_seconds: float = 30.0,
        background: bool = True,
    ) -> None:
        self._sprite_bin = sprite_bin
        self._local_url = local_url
        self._timeout = timeout_seconds
        self._background = background

    def command_for(self, node_name: str) -> list[str]:
        return [self._sprite_bin, "-s", node_name, "exec", "--", "curl", "-X", "POST", self._local_url]

    def _run(self, node_name: str) -> None:
        try:
            proc = subprocess.run(
                self.command_for(node_name),
                capture_output=True,
                text=True,
                timeout=self._timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            logger.warning("Failed to wake %s: %s", node_name, exc)
            return
        if proc.returncode == 0:
            logger.info("Notified %s to check for tasks", node_name)
        else:
            output = (proc.stdout or "") + (proc.stderr or "")
            logger.warning("Failed to notify %s (exit %s): %s", node_name, proc.returncode, output.strip())

    def wake(self, node_name: str) -> None:
        _spawn(f"wake-{node_name}", lambda: self._run(node_name), self._background)


class NullNotifier:
    """Wake disabled; peers rely on their own poll interval."""

    def wake(self, node_name: str) -> None:
        logger.debug("Wake disabled; not notifying %s", node_name)
