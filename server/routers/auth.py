"""Authentication routes: magic-link sign-in, token refresh and logout."""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request, Response
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from constants import APP_VERSION_HEADER, DEVICE_ID_HEADER, OS_HEADER, PLATFORM_HEADER
from core.config import Settings
from core.container import container
from core.logging import get_logger
from middleware.rate_limit import check_rate_limit
from models.auth import DeviceInfo, TokenPair
from models.user import UserRead
from services.auth import AuthService

logger = get_logger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])


class EmailAuthRequest(BaseModel):
    email: EmailStr


class RefreshRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    refresh_token: str = Field(alias="refreshToken", min_length=1, max_length=256)


def get_auth_service() -> AuthService:
    return container.auth_service()


def get_settings() -> Settings:
    return container.settings()


def get_device_info(
    device_id: Optional[str] = Header(None, alias=DEVICE_ID_HEADER),
    platform: Optional[str] = Header(None, alias=PLATFORM_HEADER),
    os: Optional[str] = Header(None, alias=OS_HEADER),
    app_version: Optional[str] = Header(None, alias=APP_VERSION_HEADER),
) -> DeviceInfo:
    return DeviceInfo(
        device_id=device_id or "unknown",
        platform=platform or "unknown",
        os=os or "unknown",
        app_version=app_version or "unknown",
    )


def token_response(pair: TokenPair) -> dict:
    return {
        "accessToken": pair.access_token,
        "refreshToken": pair.refresh_token,
        "tokenType": pair.token_type,
    }


@router.post("/email")
async def start_email_auth(
    body: EmailAuthRequest,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings)
):
    """Email a sign-in link, creating the account on first use."""
    await check_rate_limit(
        "email_auth",
        body.email.lower(),
        settings.rate_limit_email_auth,
        settings.rate_limit_email_auth_window,
        response,
    )
    await auth.initiate_email_auth(body.email)
    return {"success": True, "message": "Sign-in link sent"}


@router.get("/verify")
async def verify_email(
    token: str = Query(..., min_length=1, max_length=256),
    device: DeviceInfo = Depends(get_device_info),
    auth: AuthService = Depends(get_auth_service)
):
    """Exchange a sign-in link token for a session."""
    user, pair = await auth.verify_email_token(token, device)
    return {
        **token_response(pair),
        "user": UserRead.model_validate(user).model_dump(mode="json"),
    }


@router.post("/refresh")
async def refresh_tokens(
    body: RefreshRequest,
    auth: AuthService = Depends(get_auth_service)
):
    """Rotate a refresh token."""
    return token_response(await auth.refresh(body.refresh_token))


@router.post("/logout")
async def logout(
    body: RefreshRequest,
    auth: AuthService = Depends(get_auth_service)
):
    """Invalidate the session owning this refresh token."""
    await auth.invalidate(body.refresh_token)
    return {"success": True}


@router.post("/logout-all")
async def logout_all(
    request: Request,
    auth: AuthService = Depends(get_auth_service)
):
    """Invalidate every session of the signed-in user."""
    count = await auth.invalidate_all(request.state.user_id)
    return {"success": True, "sessions": count}
