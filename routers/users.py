import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from firebase_admin import auth as firebase_auth

import event_repository
import user_repository
from database import get_auth, get_db
from event_repository import present_event
from permissions import ensure_can_modify_user, is_admin, require_admin
from schemas import ProfileUpdate, Role, UserUpdate
from security import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/profile")
def get_profile(current=Depends(get_current_user)):
    return {"success": True, "data": {"user": current}}


@router.put("/profile")
def update_profile(body: ProfileUpdate, current=Depends(get_current_user), db=Depends(get_db), auth=Depends(get_auth)):
    updates = body.model_dump(exclude_unset=True)
    user = user_repository.update_user(db, auth, current["uid"], updates)

    if updates.get("name"):
        try:
            auth.update_user(current["uid"], display_name=updates["name"])
        except Exception as exc:
            # Profile already saved; the Auth display name is cosmetic
            logger.warning("Failed to update Auth display name for uid=%s: %s", current["uid"], exc)

    return {"success": True, "message": "Profile updated successfully", "data": {"user": user}}


@router.get("/events")
def get_user_events(current=Depends(get_current_user), db=Depends(get_db)):
    events = event_repository.find_events_for_attendee(db, current["uid"])
    return {"success": True, "data": {"events": [present_event(e) for e in events]}}


@router.delete("/profile")
def delete_account(current=Depends(get_current_user), db=Depends(get_db), auth=Depends(get_auth)):
    event_repository.remove_attendee_from_events(db, current["uid"])
    user_repository.delete_user(db, auth, current["uid"])
    return {"success": True, "message": "Account deleted successfully"}


@router.get("")
def get_all_users(
    role: Optional[Role] = None,
    limit: int = Query(100, ge=1, le=1000),
    startAfter: Optional[str] = None,
    current=Depends(require_admin),
    db=Depends(get_db),
):
    users = user_repository.list_users(db, role=role.value if role else None, limit=limit, start_after=startAfter)
    return {"success": True, "data": {"users": users}}


@router.get("/{id}")
def get_user(id: str, current=Depends(require_admin), db=Depends(get_db)):
    user = user_repository.find_user_by_id(db, id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return {"success": True, "data": {"user": user}}


@router.put("/{id}")
def update_user(id: str, body: UserUpdate, current=Depends(ensure_can_modify_user), db=Depends(get_db), auth=Depends(get_auth)):
    user = user_repository.find_user_by_id(db, id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")

    updates = {k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None}
    # Role changes are an admin privilege; anyone else's role field is dropped
    if "role" in updates and not is_admin(current):
        updates.pop("role")

    if updates.get("email"):
        updates["email"] = updates["email"].lower()
        if updates["email"] != user.get("email"):
            if user_repository.user_exists_by_email(db, updates["email"]):
                raise HTTPException(status_code=400, detail="Email already in use")
            try:
                auth.update_user(id, email=updates["email"])
            except firebase_auth.EmailAlreadyExistsError:
                raise HTTPException(status_code=400, detail="Email already in use")

    updated = user_repository.update_user(db, auth, id, updates)
    return {"success": True, "data": {"user": updated}}


@router.delete("/{id}")
def delete_user(id: str, current=Depends(require_admin), db=Depends(get_db), auth=Depends(get_auth)):
    if user_repository.find_user_by_id(db, id) is None:
        raise HTTPException(status_code=404, detail="User not found")
    if id == current["uid"]:
        raise HTTPException(status_code=400, detail="You cannot delete your own account using this endpoint")

    event_repository.remove_attendee_from_events(db, id)
    user_repository.delete_user(db, auth, id)
    logger.info("User %s deleted by admin %s", id, current["uid"])
    return {"success": True, "message": "User deleted successfully"}
