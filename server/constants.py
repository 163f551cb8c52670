"""Centralized constants for store namespaces, key prefixes and device headers."""

from typing import FrozenSet

# =============================================================================
# STORE NAMESPACES
# =============================================================================
# One logical KeyValueStore per namespace. Each namespace owns its keys and
# is the only reader of their layout.

DEFAULT_NAMESPACE = "default"
RATE_LIMITER_NAMESPACE = "rate_limiter"
LOCATION_NAMESPACE = "location_service"
PHONE_VERIFICATION_NAMESPACE = "phone_verification"
AUTH_NAMESPACE = "auth"

STORE_NAMESPACES: FrozenSet[str] = frozenset([
    DEFAULT_NAMESPACE,
    RATE_LIMITER_NAMESPACE,
    LOCATION_NAMESPACE,
    PHONE_VERIFICATION_NAMESPACE,
    AUTH_NAMESPACE,
])

# =============================================================================
# KEY PREFIXES
# =============================================================================

OTP_CODE_PREFIX = "otp:"
OTP_ISSUE_PREFIX = "otpissue:"
OTP_BLOCK_PREFIX = "otpblock:"
OTP_VERIFY_PREFIX = "otpverify:"
EMAIL_TOKEN_PREFIX = "emailtoken:"
REFRESH_LOCK_PREFIX = "refresh:"

# Cache operations
PLACE_AUTOCOMPLETE = "autocomplete"
PLACE_DETAILS = "details"
USER_ADDRESSES = "addresses"

# =============================================================================
# HTTP
# =============================================================================

DEVICE_ID_HEADER = "x-device-id"
PLATFORM_HEADER = "x-platform"
OS_HEADER = "x-os"
APP_VERSION_HEADER = "x-app-version"

# Place details fields requested from the Places API
PLACE_DETAIL_FIELDS: FrozenSet[str] = frozenset([
    "formatted_address",
    "geometry",
    "place_id",
    "type",
])
