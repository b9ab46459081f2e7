"""
Pydantic schemas for the admin API.
"""

from __future__ import annotations

from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

Priority = Literal["low", "medium", "high"]


class ClientCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    pan: str
    email: Optional[str] = None
    contact: Optional[str] = None


class ClientUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    email: Optional[str] = None
    contact: Optional[str] = None


class ClientResponse(BaseModel):
    id: str
    name: str
    pan: str
    email: Optional[str] = None
    contact: Optional[str] = None
    years: List[str] = []
    has_push_token: bool = False
    created_at: Any = None
    updated_at: Any = None


class YearCreate(BaseModel):
    year: str


class YearResponse(BaseModel):
    year: str
    document_count: int = 0
    status: str = "active"


class YearsResponse(BaseModel):
    pan: str
    years: List[str]


class DocumentCreate(BaseModel):
    name: str = Field(..., min_length=1)
    doc_name: Optional[str] = None
    file_name: Optional[str] = None
    file_url: Optional[str] = None
    file_size: Optional[int] = None
    file_type: Optional[str] = None
    uploaded_at: Optional[str] = None
    uploaded_by: Optional[str] = None


class DocumentUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    doc_name: Optional[str] = None
    file_name: Optional[str] = None
    file_url: Optional[str] = None
    file_size: Optional[int] = None
    file_type: Optional[str] = None
    uploaded_at: Optional[str] = None
    uploaded_by: Optional[str] = None


class DocumentResponse(BaseModel):
    id: str
    name: str
    doc_name: Optional[str] = None
    year: Optional[str] = None
    file_name: Optional[str] = None
    file_url: Optional[str] = None
    file_path: Optional[str] = None
    file_size: Optional[int] = None
    file_type: Optional[str] = None
    uploaded_at: Any = None
    uploaded_by: Optional[str] = None
    created_at: Any = None
    updated_at: Any = None


class GenericDocumentResponse(BaseModel):
    id: str
    name: str
    doc_name: Optional[str] = None
    file_name: Optional[str] = None
    file_url: Optional[str] = None
    file_path: Optional[str] = None
    file_size: Optional[int] = None
    file_type: Optional[str] = None
    uploaded_at: Any = None
    created_at: Any = None
    updated_at: Any = None


class BannerResponse(BaseModel):
    id: str
    banner_name: str
    image_url: str = ""
    image_path: str = ""
    is_active: bool = True
    file_name: str = ""
    file_size: int = 0
    file_type: str = ""
    note: str = ""
    created_at: Any = None
    updated_at: Any = None


class NotificationResponse(BaseModel):
    id: str
    title: str
    message: str
    priority: str = "medium"
    image_url: Optional[str] = None
    image_path: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    file_type: Optional[str] = None
    created_at: Any = None
    updated_at: Any = None


class NotificationUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    message: Optional[str] = Field(default=None, min_length=1)
    priority: Optional[Priority] = None


class DashboardResponse(BaseModel):
    total_clients: int
    clients_with_push_tokens: int
    total_banners: int
    active_banners: int
    total_notifications: int


class BroadcastPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1)
    image_url: Optional[str] = Field(default=None, alias="imageUrl")


class BroadcastResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: str
    failure_count: Optional[int] = Field(default=None, alias="failureCount")
