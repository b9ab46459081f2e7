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
"""Helpers that derive Firestore document ids from user-entered values."""

import re

PAN_PATTERN = re.compile(r"^[A-Z]{5}[0-9]{4}[A-Z]$")
YEAR_RANGE_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")
SINGLE_YEAR_PATTERN = re.compile(r"^\d{4}$")

MIN_YEAR = 1900
MAX_YEAR = 2100


def sanitize_email(email: str) -> str:
    """Turns a login email into the firm id used in Firestore paths."""
    return email.replace(".", "_")


def sanitize_pan(pan: str) -> str:
    """
    Normalizes a PAN so it can be used as the client document id.

    Raises:
        ValueError: If the PAN is empty or not of the form ABCDE1234F.
    """
    if pan is None or not str(pan).strip():
        raise ValueError("PAN number is required")
    sanitized = re.sub(r"[^A-Z0-9]", "", str(pan).upper())
    if not PAN_PATTERN.match(sanitized):
        raise ValueError("Invalid PAN format. Expected format: ABCDE1234F")
    return sanitized


def banner_key(banner_name: str) -> str:
    key = re.sub(r"[^a-zA-Z0-9\s]", "", banner_name or "").strip()
    key = re.sub(r"\s+", "_", key).lower()
    if not key:
        raise ValueError("Banner name must contain letters or digits.")
    return key


def normalize_year(value: str) -> str:
    """
    Validates an assessment year and returns it in "YYYY-YY" form.

    "2024-25" is accepted as is when the end year follows the start year,
    and "2024" is expanded to "2024-25".
    """
    value = (value or "").strip()
    match = YEAR_RANGE_PATTERN.match(value)
    if match:
        start = int(match.group(1))
        end = int(match.group(1)[:2] + match.group(2))
        if end == start + 1 and MIN_YEAR <= start <= MAX_YEAR:
            return value
    elif SINGLE_YEAR_PATTERN.match(value):
        start = int(value)
        if MIN_YEAR <= start < MAX_YEAR:
            return f"{start}-{(start + 1) % 100:02d}"
    raise ValueError(
        "Invalid year format. Use YYYY-YY (e.g. 2024-25) or YYYY (e.g. 2024)."
    )


def year_sort_key(year: str) -> int:
    try:
        return int(year.split("-")[0])
    except ValueError:
        return 0
