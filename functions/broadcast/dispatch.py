# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================
"""
Sends one push notification to every client of a CA firm.

The firm admin panel calls this through the send_admin_broadcast callable
(or the backend's /broadcast route). A broadcast is authorized only when the
caller's sanitized email equals the requested firm id. Every client record
under ca_admin/{firmId}/clients that carries an fcmToken receives the
notification through a single FCM multicast, and tokens FCM reports as no
longer registered are removed from their client records afterwards.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional

from firebase_admin import exceptions as firebase_exceptions
from firebase_admin import messaging

from broadcast.errors import (
    BroadcastError,
    Internal,
    InvalidArgument,
    PermissionDenied,
    Unauthenticated,
)
from shared.api import Client
from shared.keys import sanitize_email

logger = logging.getLogger(__name__)

# FCM rejects multicast messages addressed to more than 500 tokens.
MULTICAST_BATCH_SIZE = 500

NO_RECIPIENTS_MESSAGE = "This firm has no clients with notification tokens."
TOKEN_PREVIEW_LENGTH = 20


@dataclass
class BroadcastRequest:
    title: str
    body: str
    firm_id: str
    image_url: Optional[str] = None


@dataclass
class ClientToken:
    client_id: str
    token: str


@dataclass
class DeliveryOutcome:
    """FCM's verdict for a single token of a multicast send."""

    token: str
    success: bool
    message_id: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    stale: bool = False


@dataclass
class DispatchResult:
    success: bool
    message: str
    failure_count: Optional[int] = None
    success_count: int = 0
    total_tokens: int = 0
    stale_client_ids: List[str] = field(default_factory=list)

    def to_response(self) -> dict:
        """The payload returned to the admin panel."""
        response = {"success": self.success, "message": self.message}
        if self.failure_count is not None:
            response["failureCount"] = self.failure_count
        return response


def token_preview(token: str) -> str:
    return token[:TOKEN_PREVIEW_LENGTH] + "..."


def parse_broadcast_request(data: Any) -> BroadcastRequest:
    """
    Reads a broadcast request from a callable payload.

    The payload must be a flat mapping with string title, body and firmId
    values and an optional string imageUrl.

    Raises:
        InvalidArgument: If the payload has any other shape.
    """
    if not isinstance(data, Mapping):
        raise InvalidArgument(
            "The function must be called with 'title', 'body', and 'firmId'."
        )

    values = {}
    for key in ("title", "body", "firmId"):
        value = data.get(key)
        if not isinstance(value, str) or not value.strip():
            raise InvalidArgument(
                "The function must be called with 'title', 'body', and 'firmId'."
            )
        values[key] = value

    image_url = data.get("imageUrl")
    if image_url is not None and not isinstance(image_url, str):
        raise InvalidArgument("'imageUrl' must be a string when provided.")

    return BroadcastRequest(
        title=values["title"],
        body=values["body"],
        firm_id=values["firmId"],
        image_url=image_url or None,
    )


def authorize(caller_email: Optional[str], firm_id: str) -> None:
    """A firm admin may only broadcast to their own firm."""
    if not caller_email:
        raise Unauthenticated(
            "Unable to verify user email from authentication token."
        )
    if sanitize_email(caller_email) != firm_id:
        logger.warning(
            "Broadcast denied: caller %s is not the admin of firm %s",
            caller_email,
            firm_id,
        )
        raise PermissionDenied(
            "You can only send notifications to your own firm's clients."
        )


def collect_tokens(clients: Iterable[Client]) -> List[ClientToken]:
    tokens = []
    for client in clients:
        if client.fcm_token:
            tokens.append(ClientToken(client_id=client.id, token=client.fcm_token))
        else:
            logger.debug("No FCM token for client %s", client.id)
    return tokens


def build_multicast_message(
    tokens: List[str], request: BroadcastRequest
) -> messaging.MulticastMessage:
    return messaging.MulticastMessage(
        tokens=tokens,
        notification=messaging.Notification(
            title=request.title,
            body=request.body,
            image=request.image_url,
        ),
        android=messaging.AndroidConfig(priority="high"),
        apns=messaging.APNSConfig(headers={"apns-priority": "10"}),
        webpush=messaging.WebpushConfig(headers={"Urgency": "high"}),
    )


def is_stale_token_error(error: Optional[BaseException]) -> bool:
    """
    True when FCM says the token will never be deliverable again.

    FCM reports uninstalled apps and rotated tokens as UnregisteredError, and
    malformed tokens as an InvalidArgumentError naming the registration token.
    """
    if error is None:
        return False
    if isinstance(error, messaging.UnregisteredError):
        return True
    if isinstance(error, firebase_exceptions.InvalidArgumentError):
        return "registration token" in str(error).lower()
    return False


def _batches(items: List[ClientToken], size: int) -> List[List[ClientToken]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


async def _send_all(
    client_tokens: List[ClientToken],
    request: BroadcastRequest,
    messenger,
    batch_size: int,
) -> List[DeliveryOutcome]:
    outcomes = []
    for batch in _batches(client_tokens, batch_size):
        message = build_multicast_message([ct.token for ct in batch], request)
        try:
            batch_outcomes = await asyncio.to_thread(messenger.send_multicast, message)
        except Exception as e:
            logger.error("FCM multicast send failed: %s", e)
            raise Internal(f"Failed to send notifications via FCM: {e}") from e
        if len(batch_outcomes) != len(batch):
            raise Internal(
                "Failed to send notifications via FCM: expected "
                f"{len(batch)} results, got {len(batch_outcomes)}"
            )
        outcomes.extend(batch_outcomes)
    return outcomes


async def _delete_stale_token(store, firm_id: str, client_id: str) -> None:
    await asyncio.to_thread(store.delete_client_token, firm_id, client_id)
    logger.info("Removed invalid token from client: %s", client_id)


async def remove_stale_tokens(store, firm_id: str, client_ids: List[str]) -> int:
    """
    Deletes the fcmToken field of each client concurrently.

    Individual failures are logged and otherwise ignored. Returns the number
    of clients whose token was removed.
    """
    if not client_ids:
        return 0
    logger.info("Cleaning up %d invalid tokens for firm %s", len(client_ids), firm_id)
    results = await asyncio.gather(
        *(_delete_stale_token(store, firm_id, cid) for cid in client_ids),
        return_exceptions=True,
    )
    removed = 0
    for client_id, result in zip(client_ids, results):
        if isinstance(result, BaseException):
            logger.error(
                "Failed to remove invalid token from client %s: %s", client_id, result
            )
        else:
            removed += 1
    return removed


async def dispatch_broadcast(
    request: BroadcastRequest,
    caller_email: Optional[str],
    store,
    messenger,
    batch_size: int = MULTICAST_BATCH_SIZE,
) -> DispatchResult:
    """
    Authorizes and sends a broadcast, then prunes stale tokens.

    Args:
        request: The validated broadcast request.
        caller_email: Email claim of the verified caller identity.
        store: A FirmStore providing list_clients and delete_client_token.
        messenger: A PushMessenger providing send_multicast.
        batch_size: Maximum tokens per multicast call.

    Returns:
        A DispatchResult. success is False only when no client of the firm
        has a notification token.

    Raises:
        BroadcastError: Unauthenticated, PermissionDenied or Internal.
    """
    try:
        authorize(caller_email, request.firm_id)

        clients = await asyncio.to_thread(store.list_clients, request.firm_id)
        client_tokens = collect_tokens(clients)
        logger.info(
            "Firm %s: %d clients, %d with FCM tokens",
            request.firm_id,
            len(clients),
            len(client_tokens),
        )

        if not client_tokens:
            logger.warning("No clients with FCM tokens for firm %s", request.firm_id)
            return DispatchResult(success=False, message=NO_RECIPIENTS_MESSAGE)

        outcomes = await _send_all(client_tokens, request, messenger, batch_size)

        success_count = 0
        stale_client_ids = []
        for client_token, outcome in zip(client_tokens, outcomes):
            if outcome.success:
                success_count += 1
                logger.debug(
                    "Token %s delivered, message id %s",
                    token_preview(client_token.token),
                    outcome.message_id,
                )
                continue
            logger.warning(
                "Token %s failed: %s (code=%s)",
                token_preview(client_token.token),
                outcome.error_message,
                outcome.error_code,
            )
            if outcome.stale and client_token.client_id not in stale_client_ids:
                stale_client_ids.append(client_token.client_id)

        await remove_stale_tokens(store, request.firm_id, stale_client_ids)

        total = len(client_tokens)
        failure_count = total - success_count
        if failure_count:
            logger.error("Failed to send to %d clients", failure_count)

        message = f"Notification sent to {success_count} of {total} of your clients."
        logger.info(message)
        return DispatchResult(
            success=True,
            message=message,
            failure_count=failure_count,
            success_count=success_count,
            total_tokens=total,
            stale_client_ids=stale_client_ids,
        )
    except BroadcastError:
        raise
    except Exception as e:
        logger.exception("Unexpected error dispatching broadcast")
        raise Internal(f"Internal server error: {e}") from e
