"""Notification delivery through the apprise command line tool."""

from __future__ import annotations

import shutil
import subprocess
from typing import Protocol

from ..errors import TransportError


class Transport(Protocol):
    def send(self, destination_url: str, body: str) -> None:
        """Deliver ``body``; raise :class:`TransportError` on failure."""


def format_body(link: str, title: str) -> str:
    return f"{link}\n\n{title}"


def mask_url(url: str) -> str:
    """Hide credentials in apprise URLs before they reach logs or terminals."""

    scheme, sep, rest = url.partition("://")
    if not sep:
        return url[:8] + "***" if len(url) > 8 else "***"
    host = rest.split("/", 1)[0].split("@")[-1]
    return f"{scheme}://{host[:12]}***"


class AppriseTransport:
    """Run ``apprise -b <body> <url>`` with a hard timeout."""

    def __init__(self, executable: str = "apprise", timeout: float = 30.0) -> None:
        self.executable = executable
        self.timeout = timeout

    def send(self, destination_url: str, body: str) -> None:
        binary = shutil.which(self.executable)
        if binary is None:
            raise TransportError(
                f"Failed to send notification to {mask_url(destination_url)}",
                f"`{self.executable}` was not found on PATH.",
                "Install apprise (pip install apprise) and try again.",
            )
        try:
            result = subprocess.run(
                [binary, "-b", body, destination_url],
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise TransportError(
                f"Failed to send notification to {mask_url(destination_url)}",
                f"apprise timed out after {self.timeout:.0f} seconds.",
                "Check network connectivity and apprise service health, then try again.",
            ) from exc
        if result.returncode != 0:
            raise TransportError(
                f"Failed to send notification to {mask_url(destination_url)}",
                result.stderr.strip() or "apprise exited with an error.",
                "Verify the apprise URL.",
            )


__all__ = ["AppriseTransport", "Transport", "format_body", "mask_url"]
