"""
Push notification delivery through Firebase Cloud Messaging and an
in-memory test implementation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

from firebase_admin import messaging

from broadcast.dispatch import DeliveryOutcome, is_stale_token_error

logger = logging.getLogger(__name__)


class PushMessenger(Protocol):
    """Defines the operations the dispatch needs from the push provider."""

    def send_multicast(self, message: messaging.MulticastMessage) -> List[DeliveryOutcome]:
        """Sends one multicast and returns one outcome per token, in order."""
        ...


def outcomes_from_batch_response(
    tokens: List[str], response: messaging.BatchResponse
) -> List[DeliveryOutcome]:
    outcomes = []
    for token, send_response in zip(tokens, response.responses):
        if send_response.success:
            outcomes.append(
                DeliveryOutcome(
                    token=token, success=True, message_id=send_response.message_id
                )
            )
            continue
        error = send_response.exception
        outcomes.append(
            DeliveryOutcome(
                token=token,
                success=False,
                error_code=getattr(error, "code", None),
                error_message=str(error) if error else None,
                stale=is_stale_token_error(error),
            )
        )
    return outcomes


class FcmPushMessenger:
    """Sends multicast messages with firebase_admin.messaging."""

    def __init__(self, app=None):
        self.app = app

    def send_multicast(self, message: messaging.MulticastMessage) -> List[DeliveryOutcome]:
        logger.info("Sending FCM multicast to %d tokens", len(message.tokens))
        response = messaging.send_each_for_multicast(message, app=self.app)
        logger.info(
            "FCM multicast result success=%s failure=%s",
            response.success_count,
            response.failure_count,
        )
        return outcomes_from_batch_response(message.tokens, response)


@dataclass
class InMemoryPushMessenger:
    """
    Test double for FCM.

    Tokens listed in failures fail with the given outcome template; all
    other tokens are delivered. Setting error makes every send raise it.
    """

    failures: dict = field(default_factory=dict)
    error: Optional[Exception] = None
    sent_messages: List[messaging.MulticastMessage] = field(default_factory=list)

    def fail_token(self, token: str, error_code: str, stale: bool = False) -> None:
        self.failures[token] = (error_code, stale)

    def send_multicast(self, message: messaging.MulticastMessage) -> List[DeliveryOutcome]:
        self.sent_messages.append(message)
        if self.error is not None:
            raise self.error
        outcomes = []
        for index, token in enumerate(message.tokens):
            if token in self.failures:
                error_code, stale = self.failures[token]
                outcomes.append(
                    DeliveryOutcome(
                        token=token,
                        success=False,
                        error_code=error_code,
                        error_message=f"Simulated {error_code} failure",
                        stale=stale,
                    )
                )
            else:
                outcomes.append(
                    DeliveryOutcome(
                        token=token,
                        success=True,
                        message_id=f"projects/test/messages/{len(self.sent_messages)}-{index}",
                    )
                )
        return outcomes
