import unittest
from types import SimpleNamespace
from unittest.mock import patch

from firebase_admin import messaging

from backend.messaging import FcmPushMessenger, outcomes_from_batch_response


def _send_response(message_id=None, exception=None):
    return SimpleNamespace(
        success=exception is None, message_id=message_id, exception=exception
    )


class FcmPushMessengerTests(unittest.TestCase):
    def test_outcomes_follow_token_order(self):
        response = SimpleNamespace(
            responses=[
                _send_response(message_id="m1"),
                _send_response(exception=messaging.UnregisteredError("not registered")),
                _send_response(exception=messaging.QuotaExceededError("slow down")),
            ]
        )

        outcomes = outcomes_from_batch_response(["a", "b", "c"], response)

        self.assertEqual([o.token for o in outcomes], ["a", "b", "c"])
        self.assertTrue(outcomes[0].success)
        self.assertEqual(outcomes[0].message_id, "m1")
        self.assertFalse(outcomes[1].success)
        self.assertTrue(outcomes[1].stale)
        self.assertFalse(outcomes[2].success)
        self.assertFalse(outcomes[2].stale)
        self.assertEqual(outcomes[2].error_message, "slow down")

    @patch("backend.messaging.messaging.send_each_for_multicast")
    def test_send_multicast_calls_fcm_once(self, mock_send):
        mock_send.return_value = SimpleNamespace(
            success_count=1, failure_count=0, responses=[_send_response(message_id="m1")]
        )
        app = object()
        message = messaging.MulticastMessage(tokens=["a"])

        outcomes = FcmPushMessenger(app).send_multicast(message)

        mock_send.assert_called_once_with(message, app=app)
        self.assertTrue(outcomes[0].success)


if __name__ == "__main__":
    unittest.main()
