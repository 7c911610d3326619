"""
Auth & account endpoints:
  POST  /auth/sign-up      — create an account, start a session
  POST  /auth/sign-in      — start a session
  POST  /auth/refresh      — rotate the refresh token, new access token
  POST  /auth/sign-out     — revoke the refresh token
  GET   /auth/me           — current user
  PATCH /auth/me           — onboarding / profile settings
  POST  /auth/me/avatar    — upload a profile picture
"""
import logging
import re

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from opentelemetry import trace
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from spoonfeed.auth import create_access_token, get_current_user, hash_password, verify_password
from spoonfeed.clients.redis_client import SessionStore, get_session_store
from spoonfeed.clients.storage_client import ObjectStorage, get_storage
from spoonfeed.config import settings
from spoonfeed.database import get_db
from spoonfeed.models import User
from spoonfeed.schemas import (
    CurrentUserResponse,
    ProfileUpdate,
    RefreshRequest,
    SessionResponse,
    SignInRequest,
    SignUpRequest,
)
from spoonfeed.telemetry import MEDIA_UPLOAD_FAILURES_TOTAL

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


async def _unique_username(db: AsyncSession, wanted: str) -> str:
    base = re.sub(r"[^a-z0-9_.]", "", wanted.lower())[:90] or "user"
    if len(base) < 3:
        base = f"{base}_user"
    candidate, n = base, 1
    while await db.scalar(select(User.id).where(User.username == candidate)):
        n += 1
        candidate = f"{base}{n}"
    return candidate


async def _session_for(user: User, sessions: SessionStore) -> SessionResponse:
    return SessionResponse(
        access_token=create_access_token(user.id),
        refresh_token=await sessions.create(user.id),
        expires_in=settings.access_token_ttl_minutes * 60,
        user=CurrentUserResponse.model_validate(user),
    )


@router.post("/sign-up", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def sign_up(
    body: SignUpRequest,
    db: AsyncSession = Depends(get_db),
    sessions: SessionStore = Depends(get_session_store),
):
    with tracer.start_as_current_span("sign_up"):
        email = body.email.lower()
        existing = await db.scalar(select(User.id).where(func.lower(User.email) == email))
        if existing:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="An account with this email already exists",
            )

        if body.username:
            taken = await db.scalar(select(User.id).where(User.username == body.username))
            if taken:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail=f"Username '{body.username}' already taken",
                )
            username = body.username
        else:
            username = await _unique_username(db, email.split("@", 1)[0])

        user = User(
            email=email,
            password_hash=hash_password(body.password),
            username=username,
            cuisines=[],
        )
        db.add(user)
        await db.flush()

        logger.info("Created user %s (id=%s)", user.username, user.id)
        return await _session_for(user, sessions)


@router.post("/sign-in", response_model=SessionResponse)
async def sign_in(
    body: SignInRequest,
    db: AsyncSession = Depends(get_db),
    sessions: SessionStore = Depends(get_session_store),
):
    with tracer.start_as_current_span("sign_in"):
        result = await db.execute(select(User).where(func.lower(User.email) == body.email.lower()))
        user = result.scalar_one_or_none()
        if user is None or not verify_password(body.password, user.password_hash):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid email or password",
            )
        return await _session_for(user, sessions)


@router.post("/refresh", response_model=SessionResponse)
async def refresh(
    body: RefreshRequest,
    db: AsyncSession = Depends(get_db),
    sessions: SessionStore = Depends(get_session_store),
):
    rotated = await sessions.rotate(body.refresh_token)
    if rotated is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session expired, please sign in again",
        )
    user_id, new_refresh = rotated
    user = await db.get(User, user_id)
    if user is None:
        await sessions.revoke(new_refresh)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Account no longer exists")
    return SessionResponse(
        access_token=create_access_token(user.id),
        refresh_token=new_refresh,
        expires_in=settings.access_token_ttl_minutes * 60,
        user=CurrentUserResponse.model_validate(user),
    )


@router.post("/sign-out", status_code=status.HTTP_204_NO_CONTENT)
async def sign_out(
    body: RefreshRequest,
    sessions: SessionStore = Depends(get_session_store),
):
    """Revoke a refresh token. Unknown tokens are ignored."""
    await sessions.revoke(body.refresh_token)


@router.get("/me", response_model=CurrentUserResponse)
async def me(user: User = Depends(get_current_user)):
    return user


@router.patch("/me", response_model=CurrentUserResponse)
async def update_me(
    body: ProfileUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    with tracer.start_as_current_span("update_profile"):
        data = body.get_update_data()
        if "username" in data and data["username"] != user.username:
            taken = await db.scalar(
                select(User.id).where(User.username == data["username"], User.id != user.id)
            )
            if taken:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail=f"Username '{data['username']}' already taken",
                )
        for field, value in data.items():
            setattr(user, field, value)
        await db.flush()
        await db.refresh(user)
        return user


@router.post("/me/avatar", response_model=CurrentUserResponse)
async def upload_avatar(
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
    user: User = Depends(get_current_user),
):
    content_type = file.content_type or ""
    if not content_type.startswith("image/"):
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail="Profile pictures must be images",
        )
    data = await file.read()
    if len(data) > settings.image_max_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="Profile picture is too large",
        )

    old_key = user.avatar_key
    key = storage.build_key("avatars", user.id, file.filename, content_type)
    try:
        user.avatar_url = storage.upload(key, data, content_type)
    except Exception:
        MEDIA_UPLOAD_FAILURES_TOTAL.labels(kind="avatar").inc()
        raise
    user.avatar_key = key
    try:
        await db.commit()
    except Exception:
        storage.delete(key)
        raise
    if old_key:
        try:
            storage.delete(old_key)
        except Exception as exc:
            logger.warning("Could not delete old avatar %s: %s", old_key, exc)
    await db.refresh(user)
    return user
