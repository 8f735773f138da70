"""Requester identification.

Tokens are issued by the surrounding application; this module only verifies
them (PyJWT, HS256) and exposes the requester's member id as a FastAPI
dependency.
"""

from __future__ import annotations

import os
from typing import Any

import jwt
from fastapi import HTTPException, Request

_JWT_SECRET_ENV = "JWT_SECRET"
_JWT_ALGORITHM = "HS256"
_JWT_COOKIE_NAME = "tree_session"


def _get_jwt_secret() -> str:
    secret = os.environ.get(_JWT_SECRET_ENV, "")
    if not secret:
        # Fallback for development; NOT safe for production.
        secret = "dev-secret-change-me"
    return secret


def decode_jwt(token: str) -> dict[str, Any]:
    """Decode and verify a JWT.  Raises ``jwt.PyJWTError`` on failure."""
    return jwt.decode(token, _get_jwt_secret(), algorithms=[_JWT_ALGORITHM])


def _token_from_request(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        token = header[7:].strip()
        if token:
            return token
    return request.cookies.get(_JWT_COOKIE_NAME) or None


def get_requester_id(request: Request) -> str:
    """Return the authenticated requester's member id.

    Raises 401 when the token is missing, invalid or expired, and when it
    carries no member id.
    """
    token = _token_from_request(request)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        claims = decode_jwt(token)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Session expired")
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid session")

    member_id = claims.get("member_id") or claims.get("memberId")
    if not member_id:
        raise HTTPException(status_code=401, detail="Member profile not found")
    return str(member_id)
