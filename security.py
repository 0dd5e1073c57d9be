"""
Authentication for Smart Navigator.

Firebase issues the ID tokens; this module only verifies them and turns the
verified claims plus the Firestore user document into the ``current user``
dict that route handlers receive. Tokens arrive either as a Bearer header or
in a cookie; cookie-authenticated writes must also carry a CSRF token.
"""
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from firebase_admin import auth as firebase_auth
from jose import JWTError, jwt

import settings
from database import USERS_COLLECTION, doc_to_dict, get_auth, get_db

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}
CSRF_HEADER = "X-CSRF-Token"


# CSRF helpers

def generate_csrf_token(uid: str, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.CSRF_TOKEN_EXPIRE_MINUTES))
    to_encode = {"sub": uid, "typ": "csrf", "nonce": secrets.token_urlsafe(16), "exp": expire}
    return jwt.encode(to_encode, settings.CSRF_SECRET, algorithm=settings.CSRF_ALGORITHM)


def verify_csrf_token(token: Optional[str], uid: str) -> bool:
    if not token:
        return False
    try:
        payload = jwt.decode(token, settings.CSRF_SECRET, algorithms=[settings.CSRF_ALGORITHM])
    except JWTError:
        return False
    return payload.get("typ") == "csrf" and payload.get("sub") == uid


# Token extraction

def extract_id_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials] = None) -> Tuple[Optional[str], Optional[str]]:
    """Return ``(token, source)`` where source is ``"header"`` or ``"cookie"``."""
    if credentials is not None and credentials.credentials:
        return credentials.credentials, "header"

    header = request.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        token = header[len("Bearer "):].strip()
        if token:
            return token, "header"

    cookie = request.cookies.get(settings.FIREBASE_COOKIE_NAME)
    if cookie:
        return cookie, "cookie"
    return None, None


def build_user(decoded: dict, user_doc: Optional[dict]) -> dict:
    """Merge verified token claims with the stored profile."""
    uid = decoded["uid"]
    email = decoded.get("email")
    if user_doc is None:
        # Signed up with Firebase but no profile written yet
        name = decoded.get("name") or (email.split("@")[0] if email else "")
        return {
            "uid": uid,
            "id": uid,
            "email": email,
            "name": name,
            "role": decoded.get("role") or "student",
            "interests": [],
            "emailVerified": decoded.get("email_verified", False),
            "createdAt": None,
            "updatedAt": None,
        }

    return {
        **user_doc,
        "uid": uid,
        "id": uid,
        "email": user_doc.get("email") or email,
        "name": user_doc.get("name") or decoded.get("name") or "",
        "role": user_doc.get("role") or decoded.get("role") or "student",
        "interests": user_doc.get("interests") or [],
        "emailVerified": decoded.get("email_verified", False),
        "createdAt": user_doc.get("createdAt"),
        "updatedAt": user_doc.get("updatedAt"),
    }


def _authenticate(request: Request, credentials, db, auth) -> dict:
    token, source = extract_id_token(request, credentials)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Access denied. No token provided.")

    try:
        decoded = auth.verify_id_token(token, check_revoked=True)
    # Expired and revoked are subclasses of invalid, so they go first
    except firebase_auth.ExpiredIdTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired.")
    except firebase_auth.RevokedIdTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token has been revoked.")
    except firebase_auth.InvalidIdTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token.")
    except Exception:
        logger.exception("ID token verification failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error during authentication.",
        )

    uid = decoded["uid"]
    if source == "cookie" and request.method.upper() not in SAFE_METHODS:
        if not verify_csrf_token(request.headers.get(CSRF_HEADER), uid):
            logger.warning("Rejected %s %s for uid=%s: bad CSRF token", request.method, request.url.path, uid)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid CSRF token.")

    try:
        user_doc = doc_to_dict(db.collection(USERS_COLLECTION).document(uid).get(), id_field="uid")
    except Exception:
        logger.exception("Failed to load profile for uid=%s", uid)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error during authentication.",
        )
    return build_user(decoded, user_doc)


# Dependencies

def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db=Depends(get_db),
    auth=Depends(get_auth),
) -> dict:
    return _authenticate(request, credentials, db, auth)


def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db=Depends(get_db),
    auth=Depends(get_auth),
) -> Optional[dict]:
    try:
        return _authenticate(request, credentials, db, auth)
    except HTTPException:
        return None
