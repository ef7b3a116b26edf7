import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr

from auth import create_token, ensure_owner_or_admin, get_current_user, hash_password, require_admin, verify_password
from config import Settings
from database import collection, create_document, find_by_id, get_documents, serialize, utcnow
from dependencies import get_settings
from errors import AuthError, ForbiddenError, NotFoundError, ValidationError
from schemas import Avatar, User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])


class RegisterRequest(BaseModel):
    name: str
    email: EmailStr
    password: str
    avatar: Optional[Avatar] = None


class AdminSetupRequest(RegisterRequest):
    admin_secret: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class UpdateUserRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    avatar: Optional[Avatar] = None
    current_password: Optional[str] = None
    new_password: Optional[str] = None


class PromoteRequest(BaseModel):
    admin_secret: Optional[str] = None


# Helpers

def _create_user(payload: RegisterRequest, role: str, settings: Settings) -> Dict[str, Any]:
    if not payload.name.strip() or not payload.password:
        raise ValidationError("Name, email, and password are required")
    if collection("user").find_one({"email": payload.email}):
        raise ValidationError("User with this email already exists")

    user_doc = User(
        name=payload.name,
        email=payload.email,
        password_hash=hash_password(payload.password),
        role=role,
        avatar=payload.avatar or Avatar(url=f"https://via.placeholder.com/150x150?text={role.title()}"),
    )
    uid = create_document("user", user_doc)
    logger.info("Registered %s %s", role, payload.email)
    return {"user": serialize(find_by_id("user", uid)), "token": create_token(uid, settings)}


def _get_user_or_404(user_id: str) -> Dict[str, Any]:
    user = find_by_id("user", user_id)
    if not user:
        raise NotFoundError("User")
    return user


def _apply_update(user: Dict[str, Any], payload: UpdateUserRequest) -> Dict[str, Any]:
    updates: Dict[str, Any] = {}
    if payload.name:
        updates["name"] = payload.name
    if payload.email and payload.email != user["email"]:
        if collection("user").find_one({"email": payload.email, "_id": {"$ne": user["_id"]}}):
            raise ValidationError("Email is already taken by another user")
        updates["email"] = payload.email
    if payload.avatar:
        updates["avatar"] = payload.avatar.model_dump()
    if payload.new_password:
        if not payload.current_password:
            raise ValidationError("Current password is required to change password")
        if not verify_password(payload.current_password, user.get("password_hash", "")):
            raise ValidationError("Current password is incorrect")
        updates["password_hash"] = hash_password(payload.new_password)

    if updates:
        updates["updated_at"] = utcnow()
        collection("user").update_one({"_id": user["_id"]}, {"$set": updates})
    return serialize(collection("user").find_one({"_id": user["_id"]}))


def _delete_user(user: Dict[str, Any], current: Dict[str, Any]) -> None:
    if str(user["_id"]) == current["id"]:
        raise ValidationError("Admin cannot delete their own account")
    order_count = collection("order").count_documents({"user_id": str(user["_id"])})
    if order_count:
        # orders keep their user_id; nothing is cascaded
        logger.warning("Admin deleting user with %d order(s): %s", order_count, user["email"])
    collection("user").delete_one({"_id": user["_id"]})


# Endpoints

@router.post("", status_code=201)
def register(payload: RegisterRequest, settings: Settings = Depends(get_settings)):
    created = _create_user(payload, "user", settings)
    return {"success": True, "message": "User registered successfully", **created}


@router.post("/admin", status_code=201)
def create_admin(payload: AdminSetupRequest, settings: Settings = Depends(get_settings)):
    if payload.admin_secret != settings.admin_secret:
        raise ForbiddenError("Invalid admin secret")
    created = _create_user(payload, "admin", settings)
    return {"success": True, "message": "Admin user created successfully", **created}


@router.post("/login")
def login(payload: LoginRequest, settings: Settings = Depends(get_settings)):
    user = collection("user").find_one({"email": payload.email})
    if not user or not verify_password(payload.password, user.get("password_hash", "")):
        raise AuthError("Invalid email or password")
    return {
        "success": True,
        "message": "Login successful",
        "user": serialize(user),
        "token": create_token(str(user["_id"]), settings),
    }


@router.get("")
def list_users(current: Dict[str, Any] = Depends(require_admin)):
    users = [serialize(u) for u in get_documents("user", newest_first=True)]
    return {"success": True, "count": len(users), "users": users}


@router.get("/profile/me")
def get_profile(current: Dict[str, Any] = Depends(get_current_user)):
    return {"success": True, "user": current}


@router.put("/profile/me")
def update_profile(payload: UpdateUserRequest, current: Dict[str, Any] = Depends(get_current_user)):
    user = _apply_update(_get_user_or_404(current["id"]), payload)
    return {"success": True, "message": "Profile updated successfully", "user": user}


@router.delete("/email/{email}")
def delete_user_by_email(email: str, current: Dict[str, Any] = Depends(require_admin)):
    user = collection("user").find_one({"email": email})
    if not user:
        raise NotFoundError("User")
    _delete_user(user, current)
    return {"success": True, "message": f"User with email {email} deleted successfully"}


@router.get("/{user_id}")
def get_user(user_id: str, current: Dict[str, Any] = Depends(get_current_user)):
    ensure_owner_or_admin(current, user_id, "You can only access your own user details")
    return {"success": True, "user": serialize(_get_user_or_404(user_id))}


@router.put("/{user_id}")
def update_user(user_id: str, payload: UpdateUserRequest, current: Dict[str, Any] = Depends(get_current_user)):
    ensure_owner_or_admin(current, user_id, "You can only update your own user information")
    user = _apply_update(_get_user_or_404(user_id), payload)
    return {"success": True, "message": "User updated successfully", "user": user}


@router.delete("/{user_id}")
def delete_user(user_id: str, current: Dict[str, Any] = Depends(require_admin)):
    _delete_user(_get_user_or_404(user_id), current)
    return {"success": True, "message": "User deleted successfully"}


@router.put("/{user_id}/promote")
def promote_user(user_id: str, payload: PromoteRequest, current: Dict[str, Any] = Depends(require_admin),
                 settings: Settings = Depends(get_settings)):
    if payload.admin_secret != settings.admin_secret:
        raise ForbiddenError("Invalid admin secret")
    user = _get_user_or_404(user_id)
    if user.get("role") == "admin":
        raise ValidationError("User is already an admin")
    collection("user").update_one({"_id": user["_id"]}, {"$set": {"role": "admin", "updated_at": utcnow()}})
    logger.info("User %s promoted to admin by %s", user["email"], current["email"])
    return {"success": True, "message": "User promoted to admin successfully", "user": serialize(find_by_id("user", user_id))}
