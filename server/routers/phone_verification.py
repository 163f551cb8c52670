"""Phone number verification routes."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from core.container import container
from core.logging import get_logger
from services.phone_verification import PhoneVerificationService
from services.users import UserService

logger = get_logger(__name__)
router = APIRouter(prefix="/api/phone-verification", tags=["phone-verification"])


class SendVerificationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    phone_number: str = Field(alias="phoneNumber", min_length=4, max_length=32)


class VerifyCodeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    phone_number: str = Field(alias="phoneNumber", min_length=4, max_length=32)
    code: str = Field(min_length=1, max_length=12)


def get_phone_verification_service() -> PhoneVerificationService:
    return container.phone_verification_service()


def get_user_service() -> UserService:
    return container.user_service()


@router.post("/send-verification")
async def send_verification(
    body: SendVerificationRequest,
    service: PhoneVerificationService = Depends(get_phone_verification_service)
):
    """Send a verification code by SMS."""
    result = await service.issue(body.phone_number)
    return {
        "success": True,
        "message": "Verification code sent",
        "expiresIn": result.expires_in,
    }


@router.post("/verify-code")
async def verify_code(
    body: VerifyCodeRequest,
    request: Request,
    service: PhoneVerificationService = Depends(get_phone_verification_service),
    users: UserService = Depends(get_user_service)
):
    """
    Verify a code.
    Signed-in callers also get the number marked verified on their profile.
    """
    is_valid = await service.verify(body.phone_number, body.code)
    if not is_valid:
        return JSONResponse(
            status_code=400,
            content={"isValid": False, "message": "Invalid or expired verification code"}
        )

    user_id = getattr(request.state, "user_id", None)
    if user_id:
        await users.mark_phone_verified(user_id, service.normalize(body.phone_number))

    return {"isValid": True}
