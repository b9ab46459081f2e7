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

# Firestore layout used by the CA admin panel. Every firm owns a document
# under ca_admin keyed by its sanitized login email.
CA_ADMIN_COLLECTION = "ca_admin"
CLIENTS_COLLECTION = "clients"
YEARS_COLLECTION = "years"
DOCUMENTS_COLLECTION = "documents"
GENERIC_DOCUMENTS_COLLECTION = "genericDocuments"
BANNERS_COLLECTION = "banners"
NOTIFICATIONS_COLLECTION = "notifications"

FCM_TOKEN_FIELD = "fcmToken"
YEARS_FIELD = "years"
CREATED_AT_FIELD = "createdAt"
UPDATED_AT_FIELD = "updatedAt"


def firm_path(firm_id: str) -> str:
    return f"{CA_ADMIN_COLLECTION}/{firm_id}"


def clients_path(firm_id: str) -> str:
    return f"{firm_path(firm_id)}/{CLIENTS_COLLECTION}"


def years_path(firm_id: str, pan: str) -> str:
    return f"{clients_path(firm_id)}/{pan}/{YEARS_COLLECTION}"


def year_documents_path(firm_id: str, pan: str, year: str) -> str:
    return f"{years_path(firm_id, pan)}/{year}/{DOCUMENTS_COLLECTION}"


def generic_documents_path(firm_id: str, pan: str) -> str:
    return f"{clients_path(firm_id)}/{pan}/{GENERIC_DOCUMENTS_COLLECTION}"


def banners_path(firm_id: str) -> str:
    return f"{firm_path(firm_id)}/{BANNERS_COLLECTION}"


def notifications_path(firm_id: str) -> str:
    return f"{firm_path(firm_id)}/{NOTIFICATIONS_COLLECTION}"
