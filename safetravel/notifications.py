"""
Delivery of password reset codes.

No mail transport is wired in: the default notifier writes the code to the
server log, which stands in for the send step.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

logger = logging.getLogger(__name__)


class ResetCodeNotifier(Protocol):
    def send_reset_code(self, email: str, code: str) -> None:
        ...


class LoggingResetCodeNotifier:
    """Logs the reset code instead of emailing it."""

    def send_reset_code(self, email: str, code: str) -> None:
        logger.info("Password reset code for %s: %s", email, code)


@dataclass
class InMemoryResetCodeNotifier:
    """Test double that records every code handed to it."""

    sent: list[tuple[str, str]] = field(default_factory=list)

    def send_reset_code(self, email: str, code: str) -> None:
        self.sent.append((email, code))

    def last_code_for(self, email: str) -> str | None:
        for sent_email, code in reversed(self.sent):
            if sent_email == email:
                return code
        return None
