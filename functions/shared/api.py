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

from dataclasses import dataclass, field
from typing import Any, List, Optional


@dataclass
class Client:
    """A firm's client, keyed by sanitized PAN."""

    id: str
    name: str = ""
    pan: str = ""
    email: Optional[str] = None
    contact: Optional[str] = None
    firm_id: Optional[str] = None
    years: List[str] = field(default_factory=list)
    fcm_token: Optional[str] = None
    created_at: Any = None
    updated_at: Any = None


@dataclass
class YearRecord:
    """Per-client assessment year, e.g. "2024-25"."""

    year: str
    document_count: int = 0
    status: str = "active"
    created_at: Any = None
    updated_at: Any = None


@dataclass
class YearDocument:
    """Metadata for a file filed under a client's assessment year."""

    id: str
    name: str = ""
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


@dataclass
class Banner:
    """Promotional banner shown in the client app, keyed by banner_key(name)."""

    id: str
    banner_name: str = ""
    image_url: str = ""
    image_path: str = ""
    is_active: bool = True
    file_name: str = ""
    file_size: int = 0
    file_type: str = ""
    note: str = ""
    created_at: Any = None
    updated_at: Any = None


@dataclass
class Notification:
    """A notification record kept in the firm's notification history."""

    id: str
    title: str = ""
    message: str = ""
    priority: str = "medium"
    image_url: Optional[str] = None
    image_path: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    file_type: Optional[str] = None
    created_at: Any = None
    updated_at: Any = None


@dataclass
class GenericDocument:
    """A client document that is not filed under any assessment year."""

    id: str
    name: str = ""
    doc_name: Optional[str] = None
    file_name: Optional[str] = None
    file_url: Optional[str] = None
    file_path: Optional[str] = None
    file_size: Optional[int] = None
    file_type: Optional[str] = None
    uploaded_at: Any = None
    created_at: Any = None
    updated_at: Any = None
