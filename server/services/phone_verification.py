"""Phone number verification with one-time codes.

Per phone number the lifecycle is:

    NoCode -> CodeIssued -> Verified          (matching code consumed)
                         -> Expired           (code TTL elapsed)
                         -> TooManyAttempts   (issue budget exhausted)

Store layout (phone_verification namespace):
    otp:{phone}         -> current 6-digit code, TTL otp_ttl
    otpissue:{phone}    -> issuance counter, window otp_issue_window
    otpblock:{phone}    -> lockout marker, TTL otp_block_duration
    otpverify:{phone}   -> attempt counter, window otp_ttl
    lock:otp:{phone}    -> issuance lock
"""

import secrets
from dataclasses import dataclass

from constants import OTP_BLOCK_PREFIX, OTP_CODE_PREFIX, OTP_ISSUE_PREFIX, OTP_VERIFY_PREFIX
from core.config import Settings
from core.exceptions import DeliveryFailed, TooManyAttempts
from core.locks import DistributedLock
from core.logging import get_logger, mask_phone
from core.rate_limit import RateLimiter
from core.store import KeyValueStore
from services.messaging import SmsSender
from services.phone_utils import normalize_phone_e164

logger = get_logger(__name__)

CODE_DIGITS = 6


def generate_code() -> str:
    """Uniformly random zero-padded 6-digit code."""
    return f"{secrets.randbelow(10 ** CODE_DIGITS):0{CODE_DIGITS}d}"


@dataclass(frozen=True)
class IssueResult:
    phone: str
    expires_in: int
    delivery_id: str


class PhoneVerificationService:
    """Issues and verifies SMS one-time codes."""

    def __init__(self, store: KeyValueStore, rate_limiter: RateLimiter,
                 lock: DistributedLock, sms: SmsSender, settings: Settings):
        self.store = store
        self.rate_limiter = rate_limiter
        self.lock = lock
        self.sms = sms
        self.settings = settings

    def normalize(self, phone: str) -> str:
        return normalize_phone_e164(phone, self.settings.default_country_code)

    async def _check_issue_budget(self, phone: str) -> None:
        block_key = OTP_BLOCK_PREFIX + phone
        blocked_for = await self.store.ttl(block_key)
        if blocked_for is not None:
            raise TooManyAttempts(retry_after=blocked_for)

        result = await self.rate_limiter.allow(
            OTP_ISSUE_PREFIX + phone,
            self.settings.otp_issue_window,
            self.settings.otp_max_issuances
        )
        if not result.allowed:
            await self.store.set_if_absent(block_key, "1", ttl=self.settings.otp_block_duration)
            logger.warning("Verification issuance blocked", phone=mask_phone(phone),
                           block_seconds=self.settings.otp_block_duration)
            raise TooManyAttempts(retry_after=self.settings.otp_block_duration)

    async def issue(self, phone: str) -> IssueResult:
        """Issue a new code and send it by SMS.

        A new code replaces any earlier one. When the budget is exhausted
        nothing is written or sent and an earlier unexpired code stays valid.

        Raises:
            InvalidPhoneNumber: If the number cannot be normalized
            TooManyAttempts: If the issuance budget is exhausted
            LockUnavailable: If another issuance for this number is in flight
            DeliveryFailed: If the SMS could not be sent; the code is discarded
        """
        phone = self.normalize(phone)
        await self._check_issue_budget(phone)

        code_key = OTP_CODE_PREFIX + phone
        async with self.lock.with_lock(code_key, self.settings.otp_lock_ttl):
            code = generate_code()
            await self.store.set(code_key, code, ttl=self.settings.otp_ttl)
            await self.store.delete(OTP_VERIFY_PREFIX + phone)

            try:
                delivery_id = await self.sms.send(
                    phone, f"Your {self.settings.app_name} verification code is: {code}"
                )
            except DeliveryFailed:
                await self.store.delete(code_key)
                raise

        logger.info("Verification code issued", phone=mask_phone(phone))
        return IssueResult(phone=phone, expires_in=self.settings.otp_ttl, delivery_id=delivery_id)

    async def verify(self, phone: str, candidate: str) -> bool:
        """Check a candidate code.

        Every attempt is counted before the comparison, so concurrent guesses
        cannot slip past the limit. A match consumes the code and clears the
        count. A mismatch leaves the code in place.

        Raises:
            TooManyAttempts: If the attempt budget for this code is spent
        """
        phone = self.normalize(phone)
        attempts_key = OTP_VERIFY_PREFIX + phone

        attempts = await self.store.increment_window(attempts_key, self.settings.otp_ttl)
        if attempts.count > self.settings.otp_max_verify_attempts:
            logger.warning("Verification attempts exhausted", phone=mask_phone(phone))
            raise TooManyAttempts(retry_after=attempts.ttl or None)

        code_key = OTP_CODE_PREFIX + phone
        stored = await self.store.get(code_key)
        if stored is None:
            logger.info("Verification code missing or expired", phone=mask_phone(phone))
            return False

        if not secrets.compare_digest(stored.encode("utf-8"), (candidate or "").encode("utf-8")):
            logger.info("Verification code mismatch", phone=mask_phone(phone),
                        attempt=attempts.count)
            return False

        # Concurrent verifiers race on the delete; only one consumes the code
        consumed = await self.store.pop(code_key)
        if consumed != stored:
            return False
        await self.store.delete(attempts_key)

        logger.info("Phone number verified", phone=mask_phone(phone))
        return True
