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

import asyncio
import unittest
from unittest.mock import MagicMock

from firebase_admin import exceptions as firebase_exceptions
from firebase_admin import messaging

from backend.db import InMemoryFirmStore
from backend.messaging import InMemoryPushMessenger
from broadcast import dispatch
from broadcast.dispatch import (
    BroadcastRequest,
    dispatch_broadcast,
    is_stale_token_error,
    parse_broadcast_request,
)
from broadcast.errors import (
    Internal,
    InvalidArgument,
    PermissionDenied,
    Unauthenticated,
)
from shared.api import Client
from shared.firebase_constants import clients_path

FIRM_EMAIL = "firm.admin@example.com"
FIRM_ID = "firm_admin@example_com"


def _seed_clients(store, firm_id, tokens):
    """Seeds one client per token; a None token means no fcmToken field."""
    for index, token in enumerate(tokens):
        pan = f"PANCL{index:04d}Z"
        data = {"name": f"Client {index}", "pan": pan, "email": f"c{index}@example.com"}
        if token is not None:
            data["fcmToken"] = token
        store.seed(clients_path(firm_id), pan, data)


def _request(**overrides):
    values = {"title": "Tax deadline", "body": "File by July 31", "firm_id": FIRM_ID}
    values.update(overrides)
    return BroadcastRequest(**values)


def _run(request, store, messenger, caller_email=FIRM_EMAIL, **kwargs):
    return asyncio.run(
        dispatch_broadcast(request, caller_email, store, messenger, **kwargs)
    )


class ParseBroadcastRequestTest(unittest.TestCase):

    def test_parses_flat_payload(self):
        request = parse_broadcast_request(
            {
                "title": "Hello",
                "body": "World",
                "firmId": FIRM_ID,
                "imageUrl": "https://example.com/a.png",
            }
        )
        self.assertEqual(request.title, "Hello")
        self.assertEqual(request.body, "World")
        self.assertEqual(request.firm_id, FIRM_ID)
        self.assertEqual(request.image_url, "https://example.com/a.png")

    def test_image_url_is_optional(self):
        request = parse_broadcast_request(
            {"title": "Hello", "body": "World", "firmId": FIRM_ID}
        )
        self.assertIsNone(request.image_url)

    def test_missing_fields_are_rejected(self):
        for missing in ("title", "body", "firmId"):
            payload = {"title": "Hello", "body": "World", "firmId": FIRM_ID}
            del payload[missing]
            with self.subTest(missing=missing):
                with self.assertRaises(InvalidArgument):
                    parse_broadcast_request(payload)

    def test_empty_fields_are_rejected(self):
        with self.assertRaises(InvalidArgument):
            parse_broadcast_request({"title": "  ", "body": "World", "firmId": FIRM_ID})

    def test_nested_data_payload_is_rejected(self):
        payload = {
            "auth": {"uid": "abc"},
            "data": {"title": "Hello", "body": "World", "firmId": FIRM_ID},
        }
        with self.assertRaises(InvalidArgument):
            parse_broadcast_request(payload)

    def test_non_mapping_payload_is_rejected(self):
        with self.assertRaises(InvalidArgument):
            parse_broadcast_request(["title", "body"])


class StaleTokenErrorTest(unittest.TestCase):

    def test_unregistered_is_stale(self):
        error = messaging.UnregisteredError("Requested entity was not found.")
        self.assertTrue(is_stale_token_error(error))

    def test_invalid_registration_token_is_stale(self):
        error = firebase_exceptions.InvalidArgumentError(
            "The registration token is not a valid FCM registration token"
        )
        self.assertTrue(is_stale_token_error(error))

    def test_other_errors_are_not_stale(self):
        self.assertFalse(is_stale_token_error(None))
        self.assertFalse(
            is_stale_token_error(messaging.QuotaExceededError("Quota exceeded"))
        )
        self.assertFalse(
            is_stale_token_error(
                firebase_exceptions.InvalidArgumentError("Invalid image url")
            )
        )


class DispatchBroadcastTest(unittest.TestCase):

    def setUp(self):
        self.store = InMemoryFirmStore()
        self.messenger = InMemoryPushMessenger()

    def test_scenario_one_delivered_one_unregistered(self):
        _seed_clients(self.store, FIRM_ID, ["tokA", "tokB"])
        self.messenger.fail_token("tokB", "messaging/registration-token-not-registered", stale=True)

        result = _run(_request(), self.store, self.messenger)

        self.assertEqual(
            result.to_response(),
            {
                "success": True,
                "message": "Notification sent to 1 of 2 of your clients.",
                "failureCount": 1,
            },
        )
        clients = {c.id: c for c in self.store.list_clients(FIRM_ID)}
        self.assertEqual(clients["PANCL0000Z"].fcm_token, "tokA")
        self.assertIsNone(clients["PANCL0001Z"].fcm_token)
        self.assertEqual(
            self.store.deleted_fields,
            [(clients_path(FIRM_ID), "PANCL0001Z", "fcmToken")],
        )

    def test_fan_out_accounting(self):
        _seed_clients(self.store, FIRM_ID, ["t1", "t2", "t3", "t4", "t5"])
        self.messenger.fail_token("t2", "messaging/internal-error")
        self.messenger.fail_token("t4", "messaging/quota-exceeded")

        result = _run(_request(), self.store, self.messenger)

        self.assertTrue(result.success)
        self.assertEqual(result.failure_count, 2)
        self.assertEqual(result.success_count, 3)
        self.assertEqual(result.message, "Notification sent to 3 of 5 of your clients.")
        self.assertEqual(len(self.messenger.sent_messages), 1)
        self.assertEqual(self.messenger.sent_messages[0].tokens, ["t1", "t2", "t3", "t4", "t5"])

    def test_non_stale_failures_keep_their_tokens(self):
        _seed_clients(self.store, FIRM_ID, ["t1", "t2"])
        self.messenger.fail_token("t2", "messaging/internal-error")

        result = _run(_request(), self.store, self.messenger)

        self.assertEqual(result.stale_client_ids, [])
        self.assertEqual(self.store.deleted_fields, [])
        tokens = [c.fcm_token for c in self.store.list_clients(FIRM_ID)]
        self.assertEqual(tokens, ["t1", "t2"])

    def test_clients_without_tokens_are_skipped(self):
        _seed_clients(self.store, FIRM_ID, ["t1", None, "", "t4"])
        self.messenger.fail_token("t4", "messaging/registration-token-not-registered", stale=True)

        result = _run(_request(), self.store, self.messenger)

        self.assertEqual(result.message, "Notification sent to 1 of 2 of your clients.")
        self.assertEqual(self.messenger.sent_messages[0].tokens, ["t1", "t4"])
        # The stale token belongs to the fourth client, not the second one.
        self.assertEqual(result.stale_client_ids, ["PANCL0003Z"])

    def test_record_holding_only_a_token_still_receives(self):
        path = clients_path(FIRM_ID)
        self.store.seed(path, "AAAAA1111A", {"name": "A", "pan": "AAAAA1111A", "fcmToken": "tokA"})
        self.store.seed(path, "bare-record", {"fcmToken": "tokB"})
        self.messenger.fail_token("tokB", "messaging/registration-token-not-registered", stale=True)

        result = _run(_request(), self.store, self.messenger)

        self.assertEqual(result.message, "Notification sent to 1 of 2 of your clients.")
        self.assertEqual(self.messenger.sent_messages[0].tokens, ["tokA", "tokB"])
        self.assertEqual(result.stale_client_ids, ["bare-record"])
        self.assertNotIn("fcmToken", self.store.collections[path]["bare-record"])

    def test_no_recipients_never_calls_provider(self):
        _seed_clients(self.store, FIRM_ID, [None, None])

        for _ in range(2):
            result = _run(_request(), self.store, self.messenger)
            self.assertEqual(
                result.to_response(),
                {
                    "success": False,
                    "message": "This firm has no clients with notification tokens.",
                },
            )
        self.assertEqual(self.messenger.sent_messages, [])

    def test_permission_denied_before_any_read(self):
        store = MagicMock()
        messenger = MagicMock()

        with self.assertRaises(PermissionDenied):
            _run(_request(firm_id="other_firm@example_com"), store, messenger)

        store.list_clients.assert_not_called()
        messenger.send_multicast.assert_not_called()

    def test_missing_email_is_unauthenticated(self):
        store = MagicMock()

        with self.assertRaises(Unauthenticated):
            _run(_request(), store, MagicMock(), caller_email=None)

        store.list_clients.assert_not_called()

    def test_provider_error_becomes_internal(self):
        _seed_clients(self.store, FIRM_ID, ["t1"])
        self.messenger.error = RuntimeError("FCM unavailable")

        with self.assertRaises(Internal) as ctx:
            _run(_request(), self.store, self.messenger)

        self.assertIn("Failed to send notifications via FCM", ctx.exception.message)
        self.assertIn("FCM unavailable", ctx.exception.message)

    def test_unexpected_store_error_becomes_internal(self):
        store = MagicMock()
        store.list_clients.side_effect = ValueError("boom")

        with self.assertRaises(Internal) as ctx:
            _run(_request(), store, self.messenger)

        self.assertEqual(ctx.exception.message, "Internal server error: boom")

    def test_cleanup_failure_does_not_fail_the_call(self):
        _seed_clients(self.store, FIRM_ID, ["t1", "t2", "t3"])
        self.messenger.fail_token("t1", "messaging/registration-token-not-registered", stale=True)
        self.messenger.fail_token("t2", "messaging/invalid-registration-token", stale=True)

        original_delete = self.store.delete_client_token

        def flaky_delete(firm_id, client_id):
            if client_id == "PANCL0000Z":
                raise RuntimeError("write failed")
            original_delete(firm_id, client_id)

        self.store.delete_client_token = flaky_delete

        result = _run(_request(), self.store, self.messenger)

        self.assertTrue(result.success)
        self.assertEqual(result.message, "Notification sent to 1 of 3 of your clients.")
        self.assertEqual(result.failure_count, 2)
        tokens = {c.id: c.fcm_token for c in self.store.list_clients(FIRM_ID)}
        self.assertEqual(tokens["PANCL0000Z"], "t1")
        self.assertIsNone(tokens["PANCL0001Z"])

    def test_large_firms_are_sent_in_batches(self):
        _seed_clients(self.store, FIRM_ID, [f"t{i}" for i in range(5)])

        result = _run(_request(), self.store, self.messenger, batch_size=2)

        self.assertEqual([len(m.tokens) for m in self.messenger.sent_messages], [2, 2, 1])
        self.assertEqual(result.message, "Notification sent to 5 of 5 of your clients.")

    def test_multicast_message_carries_priority_hints(self):
        message = dispatch.build_multicast_message(
            ["t1"], _request(image_url="https://example.com/a.png")
        )
        self.assertEqual(message.notification.title, "Tax deadline")
        self.assertEqual(message.notification.body, "File by July 31")
        self.assertEqual(message.notification.image, "https://example.com/a.png")
        self.assertEqual(message.android.priority, "high")
        self.assertEqual(message.apns.headers, {"apns-priority": "10"})
        self.assertEqual(message.webpush.headers, {"Urgency": "high"})


class CollectTokensTest(unittest.TestCase):

    def test_keeps_storage_order(self):
        clients = [
            Client(id="B", name="b", pan="B", fcm_token="tb"),
            Client(id="A", name="a", pan="A"),
            Client(id="C", name="c", pan="C", fcm_token="tc"),
        ]
        pairs = dispatch.collect_tokens(clients)
        self.assertEqual([(p.client_id, p.token) for p in pairs], [("B", "tb"), ("C", "tc")])


if __name__ == "__main__":
    unittest.main()
