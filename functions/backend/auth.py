"""
Caller identity for the admin API.

Requests carry the Firebase ID token of the signed-in firm admin. The firm
id is always derived from the verified email claim of that token.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from firebase_admin import auth

from backend.dependencies import init_firebase
from shared.keys import sanitize_email

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class FirmAdmin:
    uid: str
    email: str

    @property
    def firm_id(self) -> str:
        return sanitize_email(self.email)


def verify_firebase_token(token: str) -> dict:
    return auth.verify_id_token(token, app=init_firebase())


def get_current_admin(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> FirmAdmin:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    try:
        claims = verify_firebase_token(credentials.credentials)
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    email = claims.get("email")
    if not email:
        raise HTTPException(
            status_code=401,
            detail="Unable to verify user email from authentication token.",
        )
    return FirmAdmin(uid=claims.get("uid") or claims.get("sub", ""), email=email)
