"""
Firebase Admin setup for Smart Navigator.

Firestore is the only persistence layer and Firebase Authentication owns
identities. Collections are created on first write, so the names below are
the whole "schema" as far as the database is concerned.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

import firebase_admin
from fastapi import HTTPException
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials, firestore

import settings

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"
LOCATIONS_COLLECTION = "locations"
EVENTS_COLLECTION = "events"


class NotFoundError(LookupError):
    """A referenced document does not exist."""


def initialize_firebase() -> Optional[firebase_admin.App]:
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    missing = settings.firebase_credentials_missing()
    if missing:
        logger.warning("Firebase not configured, missing: %s", ", ".join(missing))
        return None

    cred = credentials.Certificate({
        "type": "service_account",
        "project_id": settings.FIREBASE_PROJECT_ID,
        "client_email": settings.FIREBASE_CLIENT_EMAIL,
        # Keys pasted into env files keep their newlines escaped
        "private_key": settings.FIREBASE_PRIVATE_KEY.replace("\\n", "\n"),
        "token_uri": "https://oauth2.googleapis.com/token",
    })
    app = firebase_admin.initialize_app(cred, {"projectId": settings.FIREBASE_PROJECT_ID})
    logger.info("Firebase Admin SDK initialized for project %s", settings.FIREBASE_PROJECT_ID)
    return app


try:
    firebase_app = initialize_firebase()
except Exception:
    logger.exception("Failed to initialize Firebase Admin SDK")
    firebase_app = None

db = firestore.client(firebase_app) if firebase_app is not None else None


def get_db():
    if db is None:
        raise HTTPException(status_code=503, detail="Database not configured")
    return db


def get_auth():
    if firebase_app is None:
        raise HTTPException(status_code=503, detail="Authentication not configured")
    return firebase_auth


def utcnow_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


def to_iso(value: datetime) -> str:
    """Serialise a datetime as an ISO-8601 UTC string; naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="seconds")


def parse_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def doc_to_dict(snapshot, id_field: str = "id") -> Optional[dict]:
    if not snapshot.exists:
        return None
    data = snapshot.to_dict() or {}
    data[id_field] = snapshot.id
    if id_field != "id":
        data["id"] = snapshot.id
    return data
