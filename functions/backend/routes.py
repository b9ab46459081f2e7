"""
HTTP routes for the CA firm admin API.

Every route is scoped to the firm of the signed-in admin; a firm can never
read or write another firm's tree.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile

from backend.auth import FirmAdmin, get_current_admin
from backend.config import get_settings
from backend.db import FirmStore
from backend.dependencies import get_firm_store, get_push_messenger, get_storage_client
from backend.messaging import PushMessenger
from backend.schemas import (
    BannerResponse,
    BroadcastPayload,
    BroadcastResponse,
    ClientCreate,
    ClientResponse,
    ClientUpdate,
    DashboardResponse,
    DocumentCreate,
    DocumentResponse,
    DocumentUpdate,
    GenericDocumentResponse,
    NotificationResponse,
    NotificationUpdate,
    Priority,
    YearCreate,
    YearResponse,
    YearsResponse,
)
from backend.storage import (
    StorageClient,
    banner_image_path,
    generic_document_path,
    notification_image_path,
    year_document_path,
)
from broadcast.dispatch import BroadcastRequest, dispatch_broadcast
from shared.api import Client
from shared.keys import banner_key, normalize_year, sanitize_pan

logger = logging.getLogger(__name__)

router = APIRouter()


def _validated(normalize, value: str) -> str:
    try:
        return normalize(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _client_response(client: Client) -> ClientResponse:
    values = asdict(client)
    token = values.pop("fcm_token", None)
    values.pop("firm_id", None)
    return ClientResponse(**values, has_push_token=bool(token))


def _upload(
    storage: StorageClient, path: str, upload: UploadFile, data: bytes, prefix: str = "image"
) -> dict:
    content_type = upload.content_type or "application/octet-stream"
    url = storage.upload_bytes(path, data, content_type)
    return {
        f"{prefix}_url": url,
        f"{prefix}_path": path,
        "file_name": upload.filename or "",
        "file_size": len(data),
        "file_type": content_type,
    }


def _remove_object(storage: StorageClient, path: Optional[str]) -> None:
    if not path:
        return
    try:
        storage.delete(path)
    except Exception as e:
        logger.warning("Failed to delete stored object %s: %s", path, e)


def _uploaded_now() -> str:
    return datetime.now(timezone.utc).isoformat()


# --- clients ---


@router.get("/clients", response_model=List[ClientResponse])
def list_clients(
    admin: FirmAdmin = Depends(get_current_admin),
    store: FirmStore = Depends(get_firm_store),
):
    clients = sorted(store.list_clients(admin.firm_id), key=lambda c: (c.name or "").lower())
    return [_client_response(c) for c in clients]


@router.post("/clients", response_model=ClientResponse, status_code=201)
def create_client(
    payload: ClientCreate,
    admin: FirmAdmin = Depends(get_current_admin),
    store: FirmStore = Depends(get_firm_store),
):
    pan = _validated(sanitize_pan, payload.pan)
    fields = payload.model_dump(exclude={"pan"})
    client = store.create_client(admin.firm_id, pan, fields)
    logger.info("Created client %s for firm %s", pan, admin.firm_id)
    return _client_response(client)


@router.get("/clients/{pan}", response_model=ClientResponse)
def get_client(
    pan: str,
    admin: FirmAdmin = Depends(get_current_admin),
    store: FirmStore = Depends(get_firm_store),
):
    client = store.get_client(admin.firm_id, pan)
    if not client:
        raise HTTPException(status_code=404, detail="Client not found")
    return _client_response(client)


@router.patch("/clients/{pan}", response_model=ClientResponse)
def update_client(
    pan: str,
    payload: ClientUpdate,
    admin: FirmAdmin = Depends(get_current_admin),
    store: FirmStore = Depends(get_firm_store),
):
    fields = payload.model_dump(exclude_unset=True)
    return _client_response(store.update_client(admin.firm_id, pan, fields))


@router.delete("/clients/{pan}", status_code=204)
def delete_client(
    pan: str,
    admin: FirmAdmin = Depends(get_current_admin),
    store: FirmStore = Depends(get_firm_store),
):
    store.delete_client(admin.firm_id, pan)
    return Response(status_code=204)


# --- years ---


@router.get("/clients/{pan}/years", response_model=YearsResponse)
def list_years(
    pan: str,
    admin: FirmAdmin = Depends(get_current_admin),
    store: FirmStore = Depends(get_firm_store),
):
    return YearsResponse(pan=pan, years=store.list_years(admin.firm_id, pan))


@router.post("/clients/{pan}/years", response_model=YearResponse, status_code=201)
def add_year(
    pan: str,
    payload: YearCreate,
    admin: FirmAdmin = Depends(get_current_admin),
    store: FirmStore = Depends(get_firm_store),
):
    year = _validated(normalize_year, payload.year)
    record = store.add_year(admin.firm_id, pan, year)
    return YearResponse(**asdict(record))


@router.put("/clients/{pan}/years/{year}", response_model=YearResponse)
def rename_year(
    pan: str,
    year: str,
    payload: YearCreate,
    admin: FirmAdmin = Depends(get_current_admin),
    store: FirmStore = Depends(get_firm_store),
):
    new_year = _validated(normalize_year, payload.year)
    record = store.rename_year(admin.firm_id, pan, year, new_year)
    return YearResponse(**asdict(record))


@router.delete("/clients/{pan}/years/{year}", status_code=204)
def delete_year(
    pan: str,
    year: str,
    admin: FirmAdmin = Depends(get_current_admin),
    store: FirmStore = Depends(get_firm_store),
):
    store.delete_year(admin.firm_id, pan, year)
    return Response(status_code=204)


# --- year documents ---


@router.get("/clients/{pan}/years/{year}/documents", response_model=List[DocumentResponse])
def list_documents(
    pan: str,
    year: str,
    admin: FirmAdmin = Depends(get_current_admin),
    store: FirmStore = Depends(get_firm_store),
):
    return [DocumentResponse(**asdict(d)) for d in store.list_documents(admin.firm_id, pan, year)]


@router.post(
    "/clients/{pan}/years/{year}/documents",
    response_model=DocumentResponse,
    status_code=201,
)
def create_document(
    pan: str,
    year: str,
    payload: DocumentCreate,
    admin: FirmAdmin = Depends(get_current_admin),
    store: FirmStore = Depends(get_firm_store),
):
    fields = payload.model_dump()
    if not fields.get("uploaded_by"):
        fields["uploaded_by"] = admin.email
    document = store.create_document(admin.firm_id, pan, year, fields)
    return DocumentResponse(**asdict(document))


@router.patch(
    "/clients/{pan}/years/{year}/documents/{doc_id}", response_model=DocumentResponse
)
def update_document(
    pan: str,
    year: str,
    doc_id: str,
    payload: DocumentUpdate,
    admin: FirmAdmin = Depends(get_current_admin),
    store: FirmStore = Depends(get_firm_store),
):
    fields = payload.model_dump(exclude_unset=True)
    document = store.update_document(admin.firm_id, pan, year, doc_id, fields)
    return DocumentResponse(**asdict(document))


@router.post(
    "/clients/{pan}/years/{year}/documents/upload",
    response_model=DocumentResponse,
    status_code=201,
)
async def upload_document(
    pan: str,
    year: str,
    file: UploadFile = File(...),
    doc_name: str = Form(""),
    admin: FirmAdmin = Depends(get_current_admin),
    store: FirmStore = Depends(get_firm_store),
    storage: StorageClient = Depends(get_storage_client),
):
    """
    Uploads a file to Storage and files it under the client's year.
    """
    client = store.get_client(admin.firm_id, pan)
    if not client:
        raise HTTPException(status_code=404, detail="Client not found")
    if year not in store.list_years(admin.firm_id, pan):
        raise HTTPException(status_code=404, detail=f"Year {year} not found")

    file_name = file.filename or "document"
    name = doc_name.strip() or file_name.rsplit(".", 1)[0]
    data = await file.read()
    path = year_document_path(client.name or client.id, year, name, file_name)
    fields = {
        "name": name,
        "doc_name": name,
        "uploaded_at": _uploaded_now(),
        "uploaded_by": admin.email,
        **_upload(storage, path, file, data, prefix="file"),
    }
    document = store.create_document(admin.firm_id, pan, year, fields)
    logger.info("Uploaded document %s for client %s (%s)", document.id, pan, year)
    return DocumentResponse(**asdict(document))


@router.delete("/clients/{pan}/years/{year}/documents/{doc_id}", status_code=204)
def delete_document(
    pan: str,
    year: str,
    doc_id: str,
    admin: FirmAdmin = Depends(get_current_admin),
    store: FirmStore = Depends(get_firm_store),
    storage: StorageClient = Depends(get_storage_client),
):
    document = store.get_document(admin.firm_id, pan, year, doc_id)
    if not document:
        raise HTTPException(status_code=404, detail="Document not found")
    _remove_object(storage, document.file_path)
    store.delete_document(admin.firm_id, pan, year, doc_id)
    return Response(status_code=204)


# --- generic documents ---


@router.get(
    "/clients/{pan}/generic-documents", response_model=List[GenericDocumentResponse]
)
def list_generic_documents(
    pan: str,
    admin: FirmAdmin = Depends(get_current_admin),
    store: FirmStore = Depends(get_firm_store),
):
    return [
        GenericDocumentResponse(**asdict(d))
        for d in store.list_generic_documents(admin.firm_id, pan)
    ]


@router.post(
    "/clients/{pan}/generic-documents",
    response_model=GenericDocumentResponse,
    status_code=201,
)
async def create_generic_document(
    pan: str,
    file: UploadFile = File(...),
    doc_name: str = Form(""),
    admin: FirmAdmin = Depends(get_current_admin),
    store: FirmStore = Depends(get_firm_store),
    storage: StorageClient = Depends(get_storage_client),
):
    if not store.get_client(admin.firm_id, pan):
        raise HTTPException(status_code=404, detail="Client not found")

    file_name = file.filename or "document"
    name = doc_name.strip() or file_name.rsplit(".", 1)[0]
    data = await file.read()
    path = generic_document_path(admin.firm_id, pan, file_name)
    fields = {
        "name": name,
        "doc_name": name,
        "uploaded_at": _uploaded_now(),
        **_upload(storage, path, file, data, prefix="file"),
    }
    document = store.create_generic_document(admin.firm_id, pan, fields)
    return GenericDocumentResponse(**asdict(document))


@router.put(
    "/clients/{pan}/generic-documents/{doc_id}", response_model=GenericDocumentResponse
)
async def update_generic_document(
    pan: str,
    doc_id: str,
    doc_name: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    admin: FirmAdmin = Depends(get_current_admin),
    store: FirmStore = Depends(get_firm_store),
    storage: StorageClient = Depends(get_storage_client),
):
    existing = store.get_generic_document(admin.firm_id, pan, doc_id)
    if not existing:
        raise HTTPException(status_code=404, detail="Document not found")

    fields = {}
    if doc_name is not None and doc_name.strip():
        fields["name"] = fields["doc_name"] = doc_name.strip()
    if file is not None and file.filename:
        data = await file.read()
        path = generic_document_path(admin.firm_id, pan, file.filename)
        fields.update(_upload(storage, path, file, data, prefix="file"))
        fields["uploaded_at"] = _uploaded_now()

    document = store.update_generic_document(admin.firm_id, pan, doc_id, fields)
    if "file_path" in fields and existing.file_path != fields["file_path"]:
        _remove_object(storage, existing.file_path)
    return GenericDocumentResponse(**asdict(document))


@router.delete("/clients/{pan}/generic-documents/{doc_id}", status_code=204)
def delete_generic_document(
    pan: str,
    doc_id: str,
    admin: FirmAdmin = Depends(get_current_admin),
    store: FirmStore = Depends(get_firm_store),
    storage: StorageClient = Depends(get_storage_client),
):
    document = store.get_generic_document(admin.firm_id, pan, doc_id)
    if not document:
        raise HTTPException(status_code=404, detail="Document not found")
    _remove_object(storage, document.file_path)
    store.delete_generic_document(admin.firm_id, pan, doc_id)
    return Response(status_code=204)


# --- banners ---


@router.get("/banners", response_model=List[BannerResponse])
def list_banners(
    admin: FirmAdmin = Depends(get_current_admin),
    store: FirmStore = Depends(get_firm_store),
):
    return [BannerResponse(**asdict(b)) for b in store.list_banners(admin.firm_id)]


@router.post("/banners", response_model=BannerResponse, status_code=201)
async def create_banner(
    banner_name: str = Form(...),
    image: UploadFile = File(...),
    note: str = Form(""),
    admin: FirmAdmin = Depends(get_current_admin),
    store: FirmStore = Depends(get_firm_store),
    storage: StorageClient = Depends(get_storage_client),
):
    key = _validated(banner_key, banner_name)
    if store.get_banner(admin.firm_id, key):
        raise HTTPException(
            status_code=409,
            detail="A banner with this name already exists. Please choose a different name.",
        )

    data = await image.read()
    path = banner_image_path(admin.email, image.filename or "banner")
    fields = {
        "banner_name": banner_name.strip(),
        "is_active": True,
        "note": note,
        **_upload(storage, path, image, data),
    }
    return BannerResponse(**asdict(store.save_banner(admin.firm_id, key, fields)))


@router.put("/banners/{key}", response_model=BannerResponse)
async def update_banner(
    key: str,
    banner_name: str = Form(...),
    image: Optional[UploadFile] = File(None),
    note: Optional[str] = Form(None),
    is_active: Optional[bool] = Form(None),
    admin: FirmAdmin = Depends(get_current_admin),
    store: FirmStore = Depends(get_firm_store),
    storage: StorageClient = Depends(get_storage_client),
):
    existing = store.get_banner(admin.firm_id, key)
    if not existing:
        raise HTTPException(status_code=404, detail="Banner not found")

    new_key = _validated(banner_key, banner_name)
    if new_key != key and store.get_banner(admin.firm_id, new_key):
        raise HTTPException(
            status_code=409,
            detail="A banner with this name already exists. Please choose a different name.",
        )

    fields = {"banner_name": banner_name.strip()}
    if note is not None:
        fields["note"] = note
    if is_active is not None:
        fields["is_active"] = is_active
    if image is not None and image.filename:
        data = await image.read()
        path = banner_image_path(admin.email, image.filename)
        fields.update(_upload(storage, path, image, data))

    if new_key == key:
        banner = store.save_banner(admin.firm_id, key, fields)
    else:
        # Banners are keyed by name, so a rename moves the record.
        moved = {
            k: v for k, v in asdict(existing).items() if k not in ("id", "updated_at")
        }
        moved.update(fields)
        banner = store.save_banner(admin.firm_id, new_key, moved)
        store.delete_banner(admin.firm_id, key)
        logger.info("Moved banner %s to %s for firm %s", key, new_key, admin.firm_id)

    if "image_path" in fields and existing.image_path != fields["image_path"]:
        _remove_object(storage, existing.image_path)
    return BannerResponse(**asdict(banner))


@router.delete("/banners/{key}", status_code=204)
def delete_banner(
    key: str,
    admin: FirmAdmin = Depends(get_current_admin),
    store: FirmStore = Depends(get_firm_store),
    storage: StorageClient = Depends(get_storage_client),
):
    banner = store.get_banner(admin.firm_id, key)
    if not banner:
        raise HTTPException(status_code=404, detail="Banner not found")
    _remove_object(storage, banner.image_path)
    store.delete_banner(admin.firm_id, key)
    return Response(status_code=204)


# --- notifications ---


@router.get("/notifications", response_model=List[NotificationResponse])
def list_notifications(
    admin: FirmAdmin = Depends(get_current_admin),
    store: FirmStore = Depends(get_firm_store),
):
    return [
        NotificationResponse(**asdict(n)) for n in store.list_notifications(admin.firm_id)
    ]


@router.post("/notifications", response_model=NotificationResponse, status_code=201)
async def create_notification(
    title: str = Form(...),
    message: str = Form(...),
    priority: Priority = Form("medium"),
    image: Optional[UploadFile] = File(None),
    admin: FirmAdmin = Depends(get_current_admin),
    store: FirmStore = Depends(get_firm_store),
    storage: StorageClient = Depends(get_storage_client),
):
    if not title.strip() or not message.strip():
        raise HTTPException(status_code=400, detail="Title and message are required")

    fields = {"title": title.strip(), "message": message.strip(), "priority": priority}
    if image is not None and image.filename:
        data = await image.read()
        path = notification_image_path(image.filename)
        fields.update(_upload(storage, path, image, data))
    notification = store.create_notification(admin.firm_id, fields)
    return NotificationResponse(**asdict(notification))


@router.patch("/notifications/{notification_id}", response_model=NotificationResponse)
def update_notification(
    notification_id: str,
    payload: NotificationUpdate,
    admin: FirmAdmin = Depends(get_current_admin),
    store: FirmStore = Depends(get_firm_store),
):
    fields = payload.model_dump(exclude_unset=True)
    notification = store.update_notification(admin.firm_id, notification_id, fields)
    return NotificationResponse(**asdict(notification))


@router.delete("/notifications/{notification_id}", status_code=204)
def delete_notification(
    notification_id: str,
    admin: FirmAdmin = Depends(get_current_admin),
    store: FirmStore = Depends(get_firm_store),
):
    store.delete_notification(admin.firm_id, notification_id)
    return Response(status_code=204)


# --- dashboard & broadcast ---


@router.get("/dashboard", response_model=DashboardResponse)
def dashboard(
    admin: FirmAdmin = Depends(get_current_admin),
    store: FirmStore = Depends(get_firm_store),
):
    clients = store.list_clients(admin.firm_id)
    banners = store.list_banners(admin.firm_id)
    return DashboardResponse(
        total_clients=len(clients),
        clients_with_push_tokens=sum(1 for c in clients if c.fcm_token),
        total_banners=len(banners),
        active_banners=sum(1 for b in banners if b.is_active),
        total_notifications=len(store.list_notifications(admin.firm_id)),
    )


@router.post(
    "/broadcast", response_model=BroadcastResponse, response_model_exclude_none=True
)
async def broadcast(
    payload: BroadcastPayload,
    admin: FirmAdmin = Depends(get_current_admin),
    store: FirmStore = Depends(get_firm_store),
    messenger: PushMessenger = Depends(get_push_messenger),
):
    """
    Sends a push notification to every client of the caller's firm.
    """
    request = BroadcastRequest(
        title=payload.title,
        body=payload.body,
        firm_id=admin.firm_id,
        image_url=payload.image_url,
    )
    result = await dispatch_broadcast(
        request,
        admin.email,
        store,
        messenger,
        batch_size=get_settings().multicast_batch_size,
    )
    return result.to_response()
