"""
Role-based access control.

The plain ``is_*``/``can_*`` checks answer a question about a user dict; the
``require_*``/``get_*`` functions wrap them as FastAPI dependencies that raise
``HTTPException`` so routes can declare their access rules in the signature.
"""
import logging

from fastapi import Depends, HTTPException, status

import event_repository
from database import get_db
from schemas import Role
from security import get_current_user

logger = logging.getLogger(__name__)

VIEW_LOCATIONS = "view_locations"
MANAGE_LOCATIONS = "manage_locations"
VIEW_EVENTS = "view_events"
REGISTER_FOR_EVENTS = "register_for_events"
CREATE_EVENTS = "create_events"
MANAGE_OWN_EVENTS = "manage_own_events"
MANAGE_ALL_EVENTS = "manage_all_events"
VIEW_OWN_REGISTRATIONS = "view_own_registrations"
VIEW_ALL_REGISTRATIONS = "view_all_registrations"
MANAGE_USERS = "manage_users"

ROLE_PERMISSIONS = {
    Role.STUDENT.value: {
        VIEW_LOCATIONS,
        VIEW_EVENTS,
        REGISTER_FOR_EVENTS,
    },
    Role.ORGANIZER.value: {
        VIEW_LOCATIONS,
        VIEW_EVENTS,
        REGISTER_FOR_EVENTS,
        CREATE_EVENTS,
        MANAGE_OWN_EVENTS,
        VIEW_OWN_REGISTRATIONS,
    },
    Role.ADMIN.value: {
        VIEW_LOCATIONS,
        MANAGE_LOCATIONS,
        VIEW_EVENTS,
        REGISTER_FOR_EVENTS,
        CREATE_EVENTS,
        MANAGE_OWN_EVENTS,
        MANAGE_ALL_EVENTS,
        VIEW_OWN_REGISTRATIONS,
        VIEW_ALL_REGISTRATIONS,
        MANAGE_USERS,
    },
}


def has_permission(role: str, permission: str) -> bool:
    return permission in ROLE_PERMISSIONS.get(role, set())


def is_admin(user: dict) -> bool:
    return user.get("role") == Role.ADMIN.value


def is_event_owner(user: dict, event: dict) -> bool:
    return is_admin(user) or event.get("createdBy") == user.get("uid")


def can_view_registrations(user: dict, event: dict) -> bool:
    if is_admin(user):
        return True
    return user.get("role") == Role.ORGANIZER.value and event.get("createdBy") == user.get("uid")


def can_modify_user(user: dict, target_id: str) -> bool:
    return is_admin(user) or str(target_id) == str(user.get("uid"))


def _deny(user: dict, message: str):
    logger.warning("Access denied for uid=%s role=%s: %s", user.get("uid"), user.get("role"), message)
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=message)


# Dependencies

def require_roles(*roles: str, message: str = "Access denied. Insufficient permissions."):
    allowed = {r.value if isinstance(r, Role) else r for r in roles}

    def dependency(current=Depends(get_current_user)):
        if current.get("role") not in allowed:
            _deny(current, message)
        return current

    return dependency


def require_permission(permission: str, message: str = "Access denied. Insufficient permissions."):
    def dependency(current=Depends(get_current_user)):
        if not has_permission(current.get("role"), permission):
            _deny(current, message)
        return current

    return dependency


require_admin = require_roles(Role.ADMIN, message="Access denied. Administrator privileges required.")

require_organizer_or_admin = require_permission(
    CREATE_EVENTS, message="Access denied. Only organizers and admins can perform this action.")


def get_owned_event(id: str, current=Depends(get_current_user), db=Depends(get_db)) -> dict:
    """The event at ``id`` if the caller may modify it."""
    event = event_repository.find_event_by_id(db, id)
    if event is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")
    if not is_event_owner(current, event):
        _deny(current, "Access denied. You can only modify events you created.")
    return event


def get_event_for_registrations(id: str, current=Depends(get_current_user), db=Depends(get_db)) -> dict:
    event = event_repository.find_event_by_id(db, id)
    if event is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")
    if not can_view_registrations(current, event):
        _deny(current, "Access denied. You can only view registrations for events you created.")
    return event


def ensure_can_modify_user(id: str, current=Depends(get_current_user)) -> dict:
    if not can_modify_user(current, id):
        _deny(current, "Access denied. You can only modify your own profile.")
    return current
