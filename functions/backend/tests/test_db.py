import unittest
from unittest.mock import MagicMock

from google.cloud.firestore_v1 import DELETE_FIELD, SERVER_TIMESTAMP

from backend.db import (
    AlreadyExistsError,
    FirestoreFirmStore,
    InMemoryFirmStore,
    NotFoundError,
)
from shared.firebase_constants import clients_path, generic_documents_path, years_path

FIRM_ID = "firm_admin@example_com"


class InMemoryFirmStoreTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryFirmStore()
        self.store.create_client(FIRM_ID, "ABCDE1234F", {"name": "Asha"})

    def test_client_round_trip_uses_camel_case(self):
        self.store.update_client(FIRM_ID, "ABCDE1234F", {"fcm_token": "tok"})
        raw = self.store.collections[clients_path(FIRM_ID)]["ABCDE1234F"]
        self.assertEqual(raw["fcmToken"], "tok")
        self.assertEqual(self.store.get_client(FIRM_ID, "ABCDE1234F").fcm_token, "tok")

    def test_delete_client_token_only_removes_token(self):
        self.store.update_client(FIRM_ID, "ABCDE1234F", {"fcm_token": "tok"})
        self.store.delete_client_token(FIRM_ID, "ABCDE1234F")
        client = self.store.get_client(FIRM_ID, "ABCDE1234F")
        self.assertIsNone(client.fcm_token)
        self.assertEqual(client.name, "Asha")

    def test_delete_client_token_for_missing_client_raises(self):
        with self.assertRaises(NotFoundError):
            self.store.delete_client_token(FIRM_ID, "MISSING000X")

    def test_delete_client_removes_subcollections(self):
        self.store.add_year(FIRM_ID, "ABCDE1234F", "2024-25")
        self.store.create_document(FIRM_ID, "ABCDE1234F", "2024-25", {"name": "ITR"})
        self.store.delete_client(FIRM_ID, "ABCDE1234F")
        leftover = [p for p in self.store.collections if "ABCDE1234F" in p]
        self.assertEqual(leftover, [])

    def test_firms_are_isolated(self):
        self.assertEqual(self.store.list_clients("other_firm"), [])
        with self.assertRaises(NotFoundError):
            self.store.update_client("other_firm", "ABCDE1234F", {"name": "x"})

    def test_rename_year_to_existing_year_conflicts(self):
        self.store.add_year(FIRM_ID, "ABCDE1234F", "2023-24")
        self.store.add_year(FIRM_ID, "ABCDE1234F", "2024-25")
        with self.assertRaises(AlreadyExistsError):
            self.store.rename_year(FIRM_ID, "ABCDE1234F", "2023-24", "2024-25")

    def test_delete_year_updates_years_array(self):
        self.store.add_year(FIRM_ID, "ABCDE1234F", "2023-24")
        self.store.add_year(FIRM_ID, "ABCDE1234F", "2024-25")
        self.store.delete_year(FIRM_ID, "ABCDE1234F", "2023-24")
        self.assertEqual(self.store.list_years(FIRM_ID, "ABCDE1234F"), ["2024-25"])
        self.assertIsNone(self.store._get(years_path(FIRM_ID, "ABCDE1234F"), "2023-24"))

    def test_notifications_newest_first(self):
        first = self.store.create_notification(FIRM_ID, {"title": "a", "message": "1"})
        second = self.store.create_notification(FIRM_ID, {"title": "b", "message": "2"})
        ids = [n.id for n in self.store.list_notifications(FIRM_ID)]
        self.assertEqual(ids, [second.id, first.id])

    def test_records_without_optional_fields_load(self):
        self.store.seed(clients_path(FIRM_ID), "bare-record", {"fcmToken": "tok"})
        clients = {c.id: c for c in self.store.list_clients(FIRM_ID)}
        self.assertEqual(clients["bare-record"].fcm_token, "tok")
        self.assertEqual(clients["bare-record"].name, "")

    def test_generic_documents(self):
        first = self.store.create_generic_document(
            FIRM_ID, "ABCDE1234F", {"name": "PAN card", "file_path": "a/b"}
        )
        second = self.store.create_generic_document(FIRM_ID, "ABCDE1234F", {"name": "Aadhaar"})
        self.assertTrue(first.id.startswith("generic_"))
        self.assertNotEqual(first.id, second.id)
        raw = self.store.collections[generic_documents_path(FIRM_ID, "ABCDE1234F")][first.id]
        self.assertEqual(raw["filePath"], "a/b")

        ids = [d.id for d in self.store.list_generic_documents(FIRM_ID, "ABCDE1234F")]
        self.assertEqual(ids, [second.id, first.id])

        updated = self.store.update_generic_document(
            FIRM_ID, "ABCDE1234F", first.id, {"doc_name": "PAN"}
        )
        self.assertEqual(updated.doc_name, "PAN")
        self.assertEqual(updated.name, "PAN card")

        self.store.delete_generic_document(FIRM_ID, "ABCDE1234F", first.id)
        self.assertIsNone(self.store.get_generic_document(FIRM_ID, "ABCDE1234F", first.id))
        with self.assertRaises(NotFoundError):
            self.store.delete_generic_document(FIRM_ID, "ABCDE1234F", first.id)

    def test_generic_document_requires_client(self):
        with self.assertRaises(NotFoundError):
            self.store.create_generic_document(FIRM_ID, "MISSING000X", {"name": "x"})

    def test_get_document(self):
        self.store.add_year(FIRM_ID, "ABCDE1234F", "2024-25")
        created = self.store.create_document(
            FIRM_ID, "ABCDE1234F", "2024-25", {"name": "ITR", "file_path": "documents/x"}
        )
        document = self.store.get_document(FIRM_ID, "ABCDE1234F", "2024-25", created.id)
        self.assertEqual(document.file_path, "documents/x")
        self.assertIsNone(self.store.get_document(FIRM_ID, "ABCDE1234F", "2024-25", "nope"))


class FirestoreFirmStoreTests(unittest.TestCase):
    def setUp(self):
        self.db = MagicMock()
        self.store = FirestoreFirmStore(self.db)

    def test_list_clients_streams_firm_collection(self):
        snapshot = MagicMock()
        snapshot.id = "ABCDE1234F"
        snapshot.to_dict.return_value = {
            "name": "Asha",
            "pan": "ABCDE1234F",
            "fcmToken": "tok",
        }
        self.db.collection.return_value.stream.return_value = [snapshot]

        clients = self.store.list_clients(FIRM_ID)

        self.db.collection.assert_called_once_with("ca_admin/firm_admin@example_com/clients")
        self.assertEqual(clients[0].id, "ABCDE1234F")
        self.assertEqual(clients[0].fcm_token, "tok")

    def test_delete_client_token_uses_delete_field(self):
        self.store.delete_client_token(FIRM_ID, "ABCDE1234F")

        self.db.collection.assert_called_once_with(clients_path(FIRM_ID))
        doc_ref = self.db.collection.return_value.document
        doc_ref.assert_called_once_with("ABCDE1234F")
        doc_ref.return_value.update.assert_called_once_with({"fcmToken": DELETE_FIELD})

    def test_create_notification_stamps_server_timestamps(self):
        doc_ref = MagicMock()
        doc_ref.id = "n1"
        collection = self.db.collection.return_value
        collection.add.return_value = (None, doc_ref)
        snapshot = collection.document.return_value.get.return_value
        snapshot.exists = True
        snapshot.to_dict.return_value = {"title": "t", "message": "m"}

        notification = self.store.create_notification(FIRM_ID, {"title": "t", "message": "m"})

        added = collection.add.call_args[0][0]
        self.assertIs(added["createdAt"], SERVER_TIMESTAMP)
        self.assertIs(added["updatedAt"], SERVER_TIMESTAMP)
        self.assertEqual(notification.id, "n1")


if __name__ == "__main__":
    unittest.main()
