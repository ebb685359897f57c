"""
Bearer-token verification and role gates.

Tokens are Firebase ID tokens; the verified ``email`` claim identifies the
caller. Roles live on the caller's document in the ``users`` collection.
"""
import base64
import json
import logging
import os
from typing import Any, Dict, Optional

import firebase_admin
from fastapi import Depends, Header, HTTPException, Request
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials
from firebase_admin.exceptions import FirebaseError
from pymongo.database import Database

from database import get_db

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


class InvalidToken(Exception):
    pass


class FirebaseVerifier:
    def __init__(self, app: Optional[firebase_admin.App] = None):
        self.app = app

    def verify(self, token: str) -> str:
        try:
            decoded = firebase_auth.verify_id_token(token, app=self.app)
        except (ValueError, FirebaseError) as e:
            raise InvalidToken(str(e)) from e
        email = decoded.get("email")
        if not email:
            raise InvalidToken("token has no email claim")
        return email


verifier: Optional[FirebaseVerifier] = None


def load_service_account(encoded: str) -> Dict[str, Any]:
    return json.loads(base64.b64decode(encoded).decode("utf-8"))


def init_verifier() -> FirebaseVerifier:
    global verifier
    encoded = os.getenv("FB_SERVICE_KEY")
    if not encoded:
        raise RuntimeError("FB_SERVICE_KEY is not set")
    cred = credentials.Certificate(load_service_account(encoded))
    app = firebase_admin.initialize_app(cred)
    verifier = FirebaseVerifier(app)
    logger.info("Firebase app initialised for project %s", app.project_id)
    return verifier


def close_verifier() -> None:
    global verifier
    if verifier is not None and verifier.app is not None:
        firebase_admin.delete_app(verifier.app)
        logger.info("Firebase app released")
    verifier = None


def get_verifier() -> FirebaseVerifier:
    if verifier is None:
        raise HTTPException(status_code=503, detail="Identity provider not configured")
    return verifier


def verify_token(
    request: Request,
    authorization: Optional[str] = Header(None),
    token_verifier: FirebaseVerifier = Depends(get_verifier),
) -> str:
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise HTTPException(status_code=401, detail="Unauthorized access: no token")
    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Unauthorized access: no token")
    try:
        email = token_verifier.verify(token)
    except InvalidToken as e:
        logger.info("Rejected bearer token on %s: %s", request.url.path, e)
        raise HTTPException(status_code=401, detail="Unauthorized access: invalid token")
    request.state.token_email = email
    return email


def _caller_role(db: Database, email: str) -> Optional[str]:
    user = db["users"].find_one({"email": email})
    return user.get("role") if user else None


def verify_admin(email: str = Depends(verify_token), db: Database = Depends(get_db)) -> str:
    if _caller_role(db, email) != "admin":
        raise HTTPException(status_code=403, detail="Forbidden access")
    return email


def verify_librarian(email: str = Depends(verify_token), db: Database = Depends(get_db)) -> str:
    if _caller_role(db, email) not in ("librarian", "admin"):
        raise HTTPException(status_code=403, detail="Forbidden access")
    return email
