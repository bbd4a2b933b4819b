"""Selector re-identification collaborators."""

from __future__ import annotations

import json
import subprocess
from typing import Protocol, Sequence

from pydantic import ValidationError

from ..config import CssSelectors
from ..errors import RecoveryError


class SelectorRecovery(Protocol):
    """Derive fresh CSS selectors for a page whose layout drifted."""

    def recover(self, url: str) -> CssSelectors:
        """Return new selectors or raise when none could be identified."""


class CommandRecovery:
    """Delegate recovery to an external program.

    The program receives the page URL as its last argument and must print a
    JSON object with ``item_selector``, ``title_selector`` and
    ``link_selector`` on stdout.
    """

    def __init__(self, command: Sequence[str], timeout: float = 60.0) -> None:
        if not command:
            raise ValueError("CommandRecovery requires a non-empty command")
        self.command = list(command)
        self.timeout = timeout

    def recover(self, url: str) -> CssSelectors:
        try:
            result = subprocess.run(
                [*self.command, url],
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise RecoveryError(
                f"Selector recovery timed out for {url}",
                f"No answer after {self.timeout:.0f} seconds.",
            ) from exc
        except OSError as exc:
            raise RecoveryError(f"Selector recovery could not start for {url}", str(exc)) from exc
        if result.returncode != 0:
            raise RecoveryError(
                f"Selector recovery failed for {url}",
                result.stderr.strip() or f"exit code {result.returncode}",
            )
        try:
            return CssSelectors.model_validate(json.loads(result.stdout))
        except (ValueError, ValidationError) as exc:
            raise RecoveryError(f"Selector recovery returned invalid selectors for {url}", str(exc)) from exc


__all__ = ["CommandRecovery", "SelectorRecovery"]
