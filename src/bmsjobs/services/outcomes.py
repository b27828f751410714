"""Result of handing one notification to a dispatcher.

Dispatchers translate their own errors into one of these values so the
retry scheduler decides on retry vs. give-up without inspecting exception
types:

- Success: the transport accepted the message
- RetryableFailure: try again later (network, timeout, 4xx SMTP, 5xx HTTP)
- PermanentFailure: retrying cannot help (rejected address, bad template)
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Success:
    """The message was accepted for delivery."""

    message_id: str | None = None


@dataclass(frozen=True, slots=True)
class RetryableFailure:
    """A transient failure; consumes one retry."""

    reason: str


@dataclass(frozen=True, slots=True)
class PermanentFailure:
    """A failure that no retry will fix; the notification is marked FAILED."""

    reason: str


DispatchOutcome = Success | RetryableFailure | PermanentFailure
