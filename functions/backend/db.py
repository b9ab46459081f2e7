"""
Data access for a CA firm's Firestore tree and an in-memory test implementation.

Everything a firm owns lives under ca_admin/{firmId}:

    clients/{pan}                              client record, years array, fcmToken
    clients/{pan}/years/{year}                 year record
    clients/{pan}/years/{year}/documents/{id}  uploaded document metadata
    clients/{pan}/genericDocuments/{id}        documents not tied to a year
    banners/{bannerKey}
    notifications/{id}

Records are stored with camelCase keys, as the React panel writes them.
"""

from __future__ import annotations

import copy
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Protocol, Type, TypeVar

from dacite import Config, from_dict
from google.cloud.firestore_v1 import DELETE_FIELD, SERVER_TIMESTAMP

from shared import firebase_constants as paths
from shared.api import (
    Banner,
    Client,
    GenericDocument,
    Notification,
    YearDocument,
    YearRecord,
)
from shared.json_utils import convert_keys
from shared.keys import year_sort_key

T = TypeVar("T")

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class NotFoundError(Exception):
    pass


class AlreadyExistsError(Exception):
    pass


class FirmStore(Protocol):
    """Interface for a firm's data."""

    def list_clients(self, firm_id: str) -> List[Client]:
        ...

    def get_client(self, firm_id: str, pan: str) -> Optional[Client]:
        ...

    def create_client(self, firm_id: str, pan: str, fields: dict) -> Client:
        ...

    def update_client(self, firm_id: str, pan: str, fields: dict) -> Client:
        ...

    def delete_client(self, firm_id: str, pan: str) -> None:
        ...

    def delete_client_token(self, firm_id: str, client_id: str) -> None:
        ...

    def list_years(self, firm_id: str, pan: str) -> List[str]:
        ...

    def add_year(self, firm_id: str, pan: str, year: str) -> YearRecord:
        ...

    def rename_year(
        self, firm_id: str, pan: str, old_year: str, new_year: str
    ) -> YearRecord:
        ...

    def delete_year(self, firm_id: str, pan: str, year: str) -> None:
        ...

    def list_documents(self, firm_id: str, pan: str, year: str) -> List[YearDocument]:
        ...

    def get_document(
        self, firm_id: str, pan: str, year: str, doc_id: str
    ) -> Optional[YearDocument]:
        ...

    def create_document(
        self, firm_id: str, pan: str, year: str, fields: dict
    ) -> YearDocument:
        ...

    def update_document(
        self, firm_id: str, pan: str, year: str, doc_id: str, fields: dict
    ) -> YearDocument:
        ...

    def delete_document(self, firm_id: str, pan: str, year: str, doc_id: str) -> None:
        ...

    def list_generic_documents(self, firm_id: str, pan: str) -> List[GenericDocument]:
        ...

    def get_generic_document(
        self, firm_id: str, pan: str, doc_id: str
    ) -> Optional[GenericDocument]:
        ...

    def create_generic_document(
        self, firm_id: str, pan: str, fields: dict
    ) -> GenericDocument:
        ...

    def update_generic_document(
        self, firm_id: str, pan: str, doc_id: str, fields: dict
    ) -> GenericDocument:
        ...

    def delete_generic_document(self, firm_id: str, pan: str, doc_id: str) -> None:
        ...

    def list_banners(self, firm_id: str) -> List[Banner]:
        ...

    def get_banner(self, firm_id: str, key: str) -> Optional[Banner]:
        ...

    def save_banner(self, firm_id: str, key: str, fields: dict) -> Banner:
        ...

    def delete_banner(self, firm_id: str, key: str) -> None:
        ...

    def list_notifications(self, firm_id: str) -> List[Notification]:
        ...

    def get_notification(self, firm_id: str, notification_id: str) -> Optional[Notification]:
        ...

    def create_notification(self, firm_id: str, fields: dict) -> Notification:
        ...

    def update_notification(
        self, firm_id: str, notification_id: str, fields: dict
    ) -> Notification:
        ...

    def delete_notification(self, firm_id: str, notification_id: str) -> None:
        ...


def to_record(data_class: Type[T], doc_id: str, data: dict) -> T:
    """Builds a record dataclass from a camelCase Firestore document."""
    values = convert_keys(data, "camel_to_snake")
    if "id" in data_class.__dataclass_fields__:
        values["id"] = doc_id
    return from_dict(data_class=data_class, data=values, config=Config(check_types=False))


def _newest_first(records: List[Any]) -> List[Any]:
    def created(record):
        value = record.created_at
        return value if isinstance(value, datetime) else _EPOCH

    return sorted(records, key=created, reverse=True)


class DocumentFirmStore:
    """
    Firm operations written against a handful of document primitives.

    Subclasses provide the primitives for a concrete document store.
    """

    # --- primitives ---

    def _timestamp(self) -> Any:
        raise NotImplementedError

    def _list(self, collection_path: str) -> List[tuple[str, dict]]:
        raise NotImplementedError

    def _get(self, collection_path: str, doc_id: str) -> Optional[dict]:
        raise NotImplementedError

    def _set(self, collection_path: str, doc_id: str, data: dict) -> None:
        raise NotImplementedError

    def _update(self, collection_path: str, doc_id: str, data: dict) -> None:
        raise NotImplementedError

    def _add(self, collection_path: str, data: dict) -> str:
        raise NotImplementedError

    def _delete(self, collection_path: str, doc_id: str) -> None:
        raise NotImplementedError

    def _delete_field(self, collection_path: str, doc_id: str, field_name: str) -> None:
        raise NotImplementedError

    def _delete_tree(self, collection_path: str, doc_id: str) -> None:
        """Deletes a document together with all of its subcollections."""
        raise NotImplementedError

    # --- helpers ---

    def _stamp(self, fields: dict, created: bool = False) -> dict:
        data = convert_keys(fields, "snake_to_camel")
        now = self._timestamp()
        data[paths.UPDATED_AT_FIELD] = now
        if created and data.get(paths.CREATED_AT_FIELD) is None:
            data[paths.CREATED_AT_FIELD] = now
        return data

    def _require(self, collection_path: str, doc_id: str, label: str) -> dict:
        data = self._get(collection_path, doc_id)
        if data is None:
            raise NotFoundError(f"{label} {doc_id} not found")
        return data

    def _require_client(self, firm_id: str, pan: str) -> dict:
        return self._require(paths.clients_path(firm_id), pan, "Client")

    # --- clients ---

    def list_clients(self, firm_id: str) -> List[Client]:
        return [
            to_record(Client, doc_id, data)
            for doc_id, data in self._list(paths.clients_path(firm_id))
        ]

    def get_client(self, firm_id: str, pan: str) -> Optional[Client]:
        data = self._get(paths.clients_path(firm_id), pan)
        return to_record(Client, pan, data) if data is not None else None

    def create_client(self, firm_id: str, pan: str, fields: dict) -> Client:
        collection = paths.clients_path(firm_id)
        if self._get(collection, pan) is not None:
            raise AlreadyExistsError(f"A client with PAN {pan} already exists")
        data = self._stamp(
            {"years": [], **fields, "pan": pan, "firm_id": firm_id}, created=True
        )
        self._set(collection, pan, data)
        return self.get_client(firm_id, pan)

    def update_client(self, firm_id: str, pan: str, fields: dict) -> Client:
        self._require_client(firm_id, pan)
        self._update(paths.clients_path(firm_id), pan, self._stamp(fields))
        return self.get_client(firm_id, pan)

    def delete_client(self, firm_id: str, pan: str) -> None:
        self._require_client(firm_id, pan)
        self._delete_tree(paths.clients_path(firm_id), pan)

    def delete_client_token(self, firm_id: str, client_id: str) -> None:
        self._delete_field(
            paths.clients_path(firm_id), client_id, paths.FCM_TOKEN_FIELD
        )

    # --- years ---

    def list_years(self, firm_id: str, pan: str) -> List[str]:
        client = self._require_client(firm_id, pan)
        return sorted(
            client.get(paths.YEARS_FIELD) or [], key=year_sort_key, reverse=True
        )

    def add_year(self, firm_id: str, pan: str, year: str) -> YearRecord:
        client = self._require_client(firm_id, pan)
        years = list(client.get(paths.YEARS_FIELD) or [])
        if year in years:
            raise AlreadyExistsError(f"Year {year} already exists for this client.")

        record = self._stamp(
            {"year": year, "document_count": 0, "status": "active"}, created=True
        )
        self._set(paths.years_path(firm_id, pan), year, record)
        self._update(
            paths.clients_path(firm_id),
            pan,
            self._stamp({paths.YEARS_FIELD: years + [year]}),
        )
        return to_record(YearRecord, year, self._get(paths.years_path(firm_id, pan), year))

    def rename_year(
        self, firm_id: str, pan: str, old_year: str, new_year: str
    ) -> YearRecord:
        client = self._require_client(firm_id, pan)
        years = list(client.get(paths.YEARS_FIELD) or [])
        if old_year not in years:
            raise NotFoundError(f"Year {old_year} not found")
        years_collection = paths.years_path(firm_id, pan)
        if new_year == old_year:
            return to_record(
                YearRecord, old_year, self._get(years_collection, old_year) or {"year": old_year}
            )
        if new_year in years:
            raise AlreadyExistsError(f"Year {new_year} already exists for this client.")

        old_record = self._get(years_collection, old_year) or {}
        self._set(
            years_collection,
            new_year,
            {**old_record, **self._stamp({"year": new_year})},
        )

        old_documents = paths.year_documents_path(firm_id, pan, old_year)
        new_documents = paths.year_documents_path(firm_id, pan, new_year)
        for doc_id, data in self._list(old_documents):
            self._set(new_documents, doc_id, {**data, "year": new_year})
        self._delete_tree(years_collection, old_year)

        renamed = [new_year if y == old_year else y for y in years]
        self._update(
            paths.clients_path(firm_id), pan, self._stamp({paths.YEARS_FIELD: renamed})
        )
        return to_record(YearRecord, new_year, self._get(years_collection, new_year))

    def delete_year(self, firm_id: str, pan: str, year: str) -> None:
        client = self._require_client(firm_id, pan)
        years = list(client.get(paths.YEARS_FIELD) or [])
        if year not in years:
            raise NotFoundError(f"Year {year} not found")
        self._delete_tree(paths.years_path(firm_id, pan), year)
        self._update(
            paths.clients_path(firm_id),
            pan,
            self._stamp({paths.YEARS_FIELD: [y for y in years if y != year]}),
        )

    # --- year documents ---

    def list_documents(self, firm_id: str, pan: str, year: str) -> List[YearDocument]:
        documents = [
            to_record(YearDocument, doc_id, data)
            for doc_id, data in self._list(paths.year_documents_path(firm_id, pan, year))
        ]
        return _newest_first(documents)

    def create_document(
        self, firm_id: str, pan: str, year: str, fields: dict
    ) -> YearDocument:
        self._require(paths.years_path(firm_id, pan), year, "Year")
        collection = paths.year_documents_path(firm_id, pan, year)
        doc_id = self._add(collection, self._stamp({**fields, "year": year}, created=True))
        return to_record(YearDocument, doc_id, self._get(collection, doc_id))

    def update_document(
        self, firm_id: str, pan: str, year: str, doc_id: str, fields: dict
    ) -> YearDocument:
        collection = paths.year_documents_path(firm_id, pan, year)
        self._require(collection, doc_id, "Document")
        self._update(collection, doc_id, self._stamp(fields))
        return to_record(YearDocument, doc_id, self._get(collection, doc_id))

    def get_document(
        self, firm_id: str, pan: str, year: str, doc_id: str
    ) -> Optional[YearDocument]:
        data = self._get(paths.year_documents_path(firm_id, pan, year), doc_id)
        return to_record(YearDocument, doc_id, data) if data is not None else None

    def delete_document(self, firm_id: str, pan: str, year: str, doc_id: str) -> None:
        collection = paths.year_documents_path(firm_id, pan, year)
        self._require(collection, doc_id, "Document")
        self._delete(collection, doc_id)

    # --- generic documents ---

    def list_generic_documents(self, firm_id: str, pan: str) -> List[GenericDocument]:
        documents = [
            to_record(GenericDocument, doc_id, data)
            for doc_id, data in self._list(paths.generic_documents_path(firm_id, pan))
        ]
        return _newest_first(documents)

    def get_generic_document(
        self, firm_id: str, pan: str, doc_id: str
    ) -> Optional[GenericDocument]:
        data = self._get(paths.generic_documents_path(firm_id, pan), doc_id)
        return to_record(GenericDocument, doc_id, data) if data is not None else None

    def create_generic_document(
        self, firm_id: str, pan: str, fields: dict
    ) -> GenericDocument:
        self._require_client(firm_id, pan)
        collection = paths.generic_documents_path(firm_id, pan)
        # Ids are generic_<epoch ms>, as the panel assigns them.
        stamp = int(time.time() * 1000)
        while self._get(collection, f"generic_{stamp}") is not None:
            stamp += 1
        doc_id = f"generic_{stamp}"
        self._set(collection, doc_id, self._stamp(fields, created=True))
        return self.get_generic_document(firm_id, pan, doc_id)

    def update_generic_document(
        self, firm_id: str, pan: str, doc_id: str, fields: dict
    ) -> GenericDocument:
        collection = paths.generic_documents_path(firm_id, pan)
        self._require(collection, doc_id, "Document")
        self._update(collection, doc_id, self._stamp(fields))
        return self.get_generic_document(firm_id, pan, doc_id)

    def delete_generic_document(self, firm_id: str, pan: str, doc_id: str) -> None:
        collection = paths.generic_documents_path(firm_id, pan)
        self._require(collection, doc_id, "Document")
        self._delete(collection, doc_id)

    # --- banners ---

    def list_banners(self, firm_id: str) -> List[Banner]:
        return [
            to_record(Banner, doc_id, data)
            for doc_id, data in self._list(paths.banners_path(firm_id))
        ]

    def get_banner(self, firm_id: str, key: str) -> Optional[Banner]:
        data = self._get(paths.banners_path(firm_id), key)
        return to_record(Banner, key, data) if data is not None else None

    def save_banner(self, firm_id: str, key: str, fields: dict) -> Banner:
        collection = paths.banners_path(firm_id)
        existing = self._get(collection, key)
        data = self._stamp(fields, created=existing is None)
        if existing is None:
            self._set(collection, key, data)
        else:
            self._update(collection, key, data)
        return self.get_banner(firm_id, key)

    def delete_banner(self, firm_id: str, key: str) -> None:
        self._require(paths.banners_path(firm_id), key, "Banner")
        self._delete(paths.banners_path(firm_id), key)

    # --- notifications ---

    def list_notifications(self, firm_id: str) -> List[Notification]:
        notifications = [
            to_record(Notification, doc_id, data)
            for doc_id, data in self._list(paths.notifications_path(firm_id))
        ]
        return _newest_first(notifications)

    def get_notification(self, firm_id: str, notification_id: str) -> Optional[Notification]:
        data = self._get(paths.notifications_path(firm_id), notification_id)
        if data is None:
            return None
        return to_record(Notification, notification_id, data)

    def create_notification(self, firm_id: str, fields: dict) -> Notification:
        collection = paths.notifications_path(firm_id)
        doc_id = self._add(collection, self._stamp(fields, created=True))
        return self.get_notification(firm_id, doc_id)

    def update_notification(
        self, firm_id: str, notification_id: str, fields: dict
    ) -> Notification:
        collection = paths.notifications_path(firm_id)
        self._require(collection, notification_id, "Notification")
        self._update(collection, notification_id, self._stamp(fields))
        return self.get_notification(firm_id, notification_id)

    def delete_notification(self, firm_id: str, notification_id: str) -> None:
        collection = paths.notifications_path(firm_id)
        self._require(collection, notification_id, "Notification")
        self._delete(collection, notification_id)


class InMemoryFirmStore(DocumentFirmStore):
    """Simple in-memory document tree for development and tests."""

    def __init__(self):
        self.collections: Dict[str, Dict[str, dict]] = {}
        self.deleted_fields: List[tuple[str, str, str]] = []
        self._last_timestamp: Optional[datetime] = None

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.collections.clear()
        self.deleted_fields.clear()

    def seed(self, collection_path: str, doc_id: str, data: dict) -> None:
        self.collections.setdefault(collection_path, {})[doc_id] = copy.deepcopy(data)

    def _timestamp(self) -> Any:
        # Strictly increasing so newest-first ordering is deterministic.
        now = datetime.now(timezone.utc)
        if self._last_timestamp and now <= self._last_timestamp:
            now = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = now
        return now

    def _list(self, collection_path: str) -> List[tuple[str, dict]]:
        docs = self.collections.get(collection_path, {})
        return [(doc_id, copy.deepcopy(data)) for doc_id, data in docs.items()]

    def _get(self, collection_path: str, doc_id: str) -> Optional[dict]:
        data = self.collections.get(collection_path, {}).get(doc_id)
        return copy.deepcopy(data) if data is not None else None

    def _set(self, collection_path: str, doc_id: str, data: dict) -> None:
        self.collections.setdefault(collection_path, {})[doc_id] = copy.deepcopy(data)

    def _update(self, collection_path: str, doc_id: str, data: dict) -> None:
        docs = self.collections.get(collection_path, {})
        if doc_id not in docs:
            raise NotFoundError(f"{collection_path}/{doc_id} not found")
        docs[doc_id].update(copy.deepcopy(data))

    def _add(self, collection_path: str, data: dict) -> str:
        doc_id = uuid.uuid4().hex[:20]
        self._set(collection_path, doc_id, data)
        return doc_id

    def _delete(self, collection_path: str, doc_id: str) -> None:
        self.collections.get(collection_path, {}).pop(doc_id, None)

    def _delete_field(self, collection_path: str, doc_id: str, field_name: str) -> None:
        docs = self.collections.get(collection_path, {})
        if doc_id not in docs:
            raise NotFoundError(f"{collection_path}/{doc_id} not found")
        docs[doc_id].pop(field_name, None)
        self.deleted_fields.append((collection_path, doc_id, field_name))

    def _delete_tree(self, collection_path: str, doc_id: str) -> None:
        self._delete(collection_path, doc_id)
        prefix = f"{collection_path}/{doc_id}/"
        for path in [p for p in self.collections if p.startswith(prefix)]:
            del self.collections[path]


class FirestoreFirmStore(DocumentFirmStore):
    """Firm data backed by Cloud Firestore through firebase_admin."""

    def __init__(self, client):
        self.db = client

    def _timestamp(self) -> Any:
        return SERVER_TIMESTAMP

    def _list(self, collection_path: str) -> List[tuple[str, dict]]:
        return [
            (snapshot.id, snapshot.to_dict() or {})
            for snapshot in self.db.collection(collection_path).stream()
        ]

    def _get(self, collection_path: str, doc_id: str) -> Optional[dict]:
        snapshot = self.db.collection(collection_path).document(doc_id).get()
        if not snapshot.exists:
            return None
        return snapshot.to_dict() or {}

    def _set(self, collection_path: str, doc_id: str, data: dict) -> None:
        self.db.collection(collection_path).document(doc_id).set(data, merge=True)

    def _update(self, collection_path: str, doc_id: str, data: dict) -> None:
        self.db.collection(collection_path).document(doc_id).update(data)

    def _add(self, collection_path: str, data: dict) -> str:
        _, doc_ref = self.db.collection(collection_path).add(data)
        return doc_ref.id

    def _delete(self, collection_path: str, doc_id: str) -> None:
        self.db.collection(collection_path).document(doc_id).delete()

    def _delete_field(self, collection_path: str, doc_id: str, field_name: str) -> None:
        self.db.collection(collection_path).document(doc_id).update(
            {field_name: DELETE_FIELD}
        )

    def _delete_tree(self, collection_path: str, doc_id: str) -> None:
        self.db.recursive_delete(self.db.collection(collection_path).document(doc_id))
