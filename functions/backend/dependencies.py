"""
Dependency wiring shared by the Cloud Functions and the FastAPI app.

The Firebase Admin app is created by init_firebase() the first time a
backend client is requested and then reused for the life of the process.
"""

from __future__ import annotations

import logging

import firebase_admin
from firebase_admin import credentials, firestore

from backend.config import get_settings
from backend.db import FirmStore, FirestoreFirmStore, InMemoryFirmStore
from backend.messaging import FcmPushMessenger, InMemoryPushMessenger, PushMessenger
from backend.storage import FirebaseStorageClient, InMemoryStorageClient, StorageClient

logger = logging.getLogger(__name__)

_firebase_app: firebase_admin.App | None = None
_firm_store: FirmStore | None = None
_push_messenger: PushMessenger | None = None
_storage_client: StorageClient | None = None


def init_firebase() -> firebase_admin.App:
    """
    Initialize the default Firebase Admin app once per process.
    """
    global _firebase_app
    if _firebase_app:
        return _firebase_app

    settings = get_settings()
    try:
        _firebase_app = firebase_admin.get_app()
        return _firebase_app
    except ValueError:
        pass

    options = {}
    if settings.firebase_project_id:
        options["projectId"] = settings.firebase_project_id
    if settings.firebase_storage_bucket:
        options["storageBucket"] = settings.firebase_storage_bucket

    credential = None
    if settings.google_application_credentials:
        credential = credentials.Certificate(settings.google_application_credentials)
        logger.info(
            "Firebase app initialized using %s", settings.google_application_credentials
        )
    _firebase_app = firebase_admin.initialize_app(credential, options or None)
    return _firebase_app


def get_firm_store() -> FirmStore:
    """
    Return a singleton firm store so in-memory state persists across requests.
    """
    global _firm_store
    if _firm_store:
        return _firm_store

    settings = get_settings()
    if settings.use_in_memory_backends:
        _firm_store = InMemoryFirmStore()
    else:
        _firm_store = FirestoreFirmStore(firestore.client(init_firebase()))
    return _firm_store


def get_push_messenger() -> PushMessenger:
    global _push_messenger
    if _push_messenger:
        return _push_messenger

    settings = get_settings()
    if settings.use_in_memory_backends:
        _push_messenger = InMemoryPushMessenger()
    else:
        _push_messenger = FcmPushMessenger(init_firebase())
    return _push_messenger


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends:
        _storage_client = InMemoryStorageClient()
    else:
        _storage_client = FirebaseStorageClient(
            settings.firebase_storage_bucket, app=init_firebase()
        )
    return _storage_client
