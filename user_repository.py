"""
User persistence.

A user lives in two places: the Firebase Auth account (credentials, custom
claims) and the ``users`` document keyed by the same uid (profile). The
functions here keep both in step.
"""
import logging
from typing import List, Optional

from firebase_admin import auth as firebase_auth
from google.cloud.firestore_v1.base_query import FieldFilter
from google.cloud.firestore_v1.query import Query

from database import USERS_COLLECTION, NotFoundError, doc_to_dict, utcnow_iso
from schemas import Role, User as UserSchema

logger = logging.getLogger(__name__)

# Profile fields mirrored into custom claims so clients can read them from the token
CLAIM_FIELDS = ("role", "name", "email", "interests", "photoURL")


def _claims(profile: dict) -> dict:
    return {field: profile.get(field) for field in CLAIM_FIELDS}


def create_user(db, auth, name: str, email: str, password: Optional[str] = None, uid: Optional[str] = None,
                interests: Optional[List[str]] = None, role: str = Role.STUDENT.value,
                photoURL: Optional[str] = None) -> dict:
    """Create the profile, and the Auth account too when no ``uid`` is given."""
    if uid is None:
        if not password:
            raise ValueError("Password is required for email/password registration")
        record = auth.create_user(email=email, password=password, display_name=name)
        uid = record.uid

    user_doc = UserSchema(
        name=name,
        email=email.lower(),
        role=role,
        interests=interests or [],
        photoURL=photoURL,
    ).model_dump()
    now = utcnow_iso()
    user_doc["createdAt"] = now
    user_doc["updatedAt"] = now

    try:
        auth.set_custom_user_claims(uid, _claims(user_doc))
        db.collection(USERS_COLLECTION).document(uid).set(user_doc)
    except Exception:
        logger.error("Failed to create user %s", email)
        raise

    logger.info("User created uid=%s email=%s", uid, email)
    return {"uid": uid, "id": uid, **user_doc}


def find_user_by_id(db, uid: str) -> Optional[dict]:
    return doc_to_dict(db.collection(USERS_COLLECTION).document(uid).get(), id_field="uid")


def find_user_by_email(db, email: str) -> Optional[dict]:
    query = db.collection(USERS_COLLECTION).where(filter=FieldFilter("email", "==", email.lower())).limit(1)
    for snapshot in query.stream():
        return doc_to_dict(snapshot, id_field="uid")
    return None


def user_exists_by_email(db, email: str) -> bool:
    return find_user_by_email(db, email) is not None


def update_user(db, auth, uid: str, updates: dict) -> dict:
    ref = db.collection(USERS_COLLECTION).document(uid)
    current = doc_to_dict(ref.get(), id_field="uid")
    if current is None:
        raise NotFoundError("User not found")

    updates = {k: v for k, v in updates.items() if k not in ("uid", "id", "createdAt")}
    updates["updatedAt"] = utcnow_iso()
    ref.update(updates)

    merged = {**current, **updates}
    try:
        auth.set_custom_user_claims(uid, _claims(merged))
    except Exception:
        logger.error("Failed to sync custom claims for uid=%s", uid)
        raise

    logger.info("User updated uid=%s fields=%s", uid, sorted(k for k in updates if k != "updatedAt"))
    return find_user_by_id(db, uid)


def delete_user(db, auth, uid: str) -> None:
    db.collection(USERS_COLLECTION).document(uid).delete()
    try:
        auth.delete_user(uid)
    except firebase_auth.UserNotFoundError:
        # Profile without an Auth account; nothing left to remove
        logger.warning("Auth account for uid=%s already gone", uid)
    logger.info("User deleted uid=%s", uid)


def list_users(db, role: Optional[str] = None, limit: Optional[int] = None,
               start_after: Optional[str] = None) -> List[dict]:
    query = db.collection(USERS_COLLECTION)
    if role:
        query = query.where(filter=FieldFilter("role", "==", role))
    query = query.order_by("createdAt", direction=Query.DESCENDING)

    if start_after:
        start_doc = db.collection(USERS_COLLECTION).document(start_after).get()
        if start_doc.exists:
            query = query.start_after(start_doc)
    if limit:
        query = query.limit(limit)

    return [doc_to_dict(snapshot, id_field="uid") for snapshot in query.stream()]
