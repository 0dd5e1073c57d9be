import logging

from fastapi import APIRouter, Depends, HTTPException, Response
from firebase_admin import auth as firebase_auth

import settings
import user_repository
from database import get_auth, get_db
from schemas import GoogleAuthBody, RegisterBody, Role
from security import generate_csrf_token, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

COOKIE_MAX_AGE = 7 * 24 * 60 * 60


def set_auth_cookie(response: Response, id_token: str):
    response.set_cookie(
        settings.FIREBASE_COOKIE_NAME,
        id_token,
        max_age=COOKIE_MAX_AGE,
        httponly=True,
        secure=settings.IS_PRODUCTION,
        samesite="strict" if settings.IS_PRODUCTION else "lax",
    )


def clear_auth_cookie(response: Response):
    response.delete_cookie(
        settings.FIREBASE_COOKIE_NAME,
        httponly=True,
        secure=settings.IS_PRODUCTION,
        samesite="strict" if settings.IS_PRODUCTION else "lax",
    )


@router.post("/register", status_code=201)
def register(body: RegisterBody, db=Depends(get_db), auth=Depends(get_auth)):
    if user_repository.user_exists_by_email(db, body.email):
        raise HTTPException(status_code=400, detail="User already exists with this email")

    try:
        # Self-registration is always a student; only admins promote
        user = user_repository.create_user(
            db,
            auth,
            name=body.name,
            email=body.email,
            password=body.password,
            interests=body.interests,
            role=Role.STUDENT.value,
        )
    except firebase_auth.EmailAlreadyExistsError:
        raise HTTPException(status_code=400, detail="User already exists with this email")

    custom_token = auth.create_custom_token(user["uid"])
    if isinstance(custom_token, bytes):
        custom_token = custom_token.decode("utf-8")

    return {
        "success": True,
        "message": "User registered successfully",
        "data": {
            "user": user,
            "customToken": custom_token,
            "csrfToken": generate_csrf_token(user["uid"]),
        },
    }


@router.post("/google")
def google_sign_in(body: GoogleAuthBody, response: Response, db=Depends(get_db), auth=Depends(get_auth)):
    try:
        decoded = auth.verify_id_token(body.idToken)
    except (firebase_auth.InvalidIdTokenError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token.")

    uid = decoded["uid"]
    user = user_repository.find_user_by_id(db, uid)
    if user is None:
        email = decoded.get("email") or ""
        user = user_repository.create_user(
            db,
            auth,
            uid=uid,
            name=decoded.get("name") or email.split("@")[0],
            email=email,
            photoURL=decoded.get("picture"),
            role=Role.STUDENT.value,
        )
        logger.info("Created profile for first Google sign-in uid=%s", uid)

    set_auth_cookie(response, body.idToken)
    return {
        "success": True,
        "message": "Login successful",
        "data": {"user": user, "csrfToken": generate_csrf_token(uid)},
    }


@router.post("/logout")
def logout(response: Response, current=Depends(get_current_user), auth=Depends(get_auth)):
    auth.revoke_refresh_tokens(current["uid"])
    clear_auth_cookie(response)
    return {"success": True, "message": "Logged out successfully"}


@router.get("/me")
def get_me(current=Depends(get_current_user)):
    return {"success": True, "data": {"user": current, "csrfToken": generate_csrf_token(current["uid"])}}


@router.get("/csrf-token")
def get_csrf_token(current=Depends(get_current_user)):
    return {"success": True, "data": {"csrfToken": generate_csrf_token(current["uid"])}}
