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

# Cloud functions for the CA firm admin panel.
#
# This file containing Python cloud functions must be named main.py.
# See https://cloud.google.com/run/docs/write-functions#python for more info.

# Standard library imports
import asyncio
from typing import Any, Optional

# Third-party library imports
from firebase_functions import https_fn, logger, options

# Local application imports
from backend.config import get_settings
from backend.dependencies import get_firm_store, get_push_messenger
from broadcast.dispatch import dispatch_broadcast, parse_broadcast_request
from broadcast.errors import BroadcastError

BROADCAST_FUNCTION_TIMEOUT = 120


@https_fn.on_call(
    region=options.SupportedRegion.US_CENTRAL1,
    timeout_sec=BROADCAST_FUNCTION_TIMEOUT,
    memory=options.MemoryOption.MB_256,
)
def send_admin_broadcast(req: https_fn.CallableRequest) -> dict:
    """
    Sends a notification ONLY to the clients of a specific CA firm.

    Called from the firm's admin panel.

    Args:
        req (https_fn.CallableRequest): The request, containing title, body,
            firmId and an optional imageUrl.

    Returns:
        {success, message, failureCount} when the firm has clients with
        notification tokens, {success: False, message} otherwise.
    """
    if req.auth is None:
        logger.error("No auth context found for send_admin_broadcast")
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.UNAUTHENTICATED,
            "You must be logged in to send notifications.",
        )
    return handle_admin_broadcast(
        req.auth, req.data, store=get_firm_store(), messenger=get_push_messenger()
    )


def handle_admin_broadcast(
    auth: Optional[https_fn.AuthData], data: Any, store, messenger
) -> dict:
    """
    Validates, authorizes and dispatches a broadcast for a verified caller.

    Only the email claim of the verified ID token is trusted; the payload is
    never consulted for identity. The email, with dots replaced by
    underscores, must equal the requested firmId.
    """
    if auth is None:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.UNAUTHENTICATED,
            "You must be logged in to send notifications.",
        )
    caller_email = (auth.token or {}).get("email")

    try:
        request = parse_broadcast_request(data)
        logger.info(
            "Broadcast requested",
            uid=auth.uid,
            firm_id=request.firm_id,
            has_image=bool(request.image_url),
        )
        result = asyncio.run(
            dispatch_broadcast(
                request,
                caller_email,
                store=store,
                messenger=messenger,
                batch_size=get_settings().multicast_batch_size,
            )
        )
    except BroadcastError as e:
        logger.error(f"Broadcast failed: {e.message}", code=e.code.value)
        raise e.to_https_error()
    except Exception as e:
        logger.error(f"Unexpected error in send_admin_broadcast: {e}")
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INTERNAL, f"Internal server error: {e}"
        )

    logger.info(result.message, success=result.success)
    return result.to_response()
