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
"""Caller-facing error kinds raised by the broadcast dispatch."""

from firebase_functions import https_fn


class BroadcastError(Exception):
    """Base class for errors that are reported back to the caller."""

    code = https_fn.FunctionsErrorCode.INTERNAL
    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_https_error(self) -> https_fn.HttpsError:
        return https_fn.HttpsError(self.code, self.message)


class Unauthenticated(BroadcastError):
    code = https_fn.FunctionsErrorCode.UNAUTHENTICATED
    http_status = 401


class InvalidArgument(BroadcastError):
    code = https_fn.FunctionsErrorCode.INVALID_ARGUMENT
    http_status = 400


class PermissionDenied(BroadcastError):
    code = https_fn.FunctionsErrorCode.PERMISSION_DENIED
    http_status = 403


class Internal(BroadcastError):
    code = https_fn.FunctionsErrorCode.INTERNAL
    http_status = 500
