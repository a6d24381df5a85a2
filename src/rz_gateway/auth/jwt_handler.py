"""JWT access-token verification.

Tokens are issued by the external auth service with the shared HS256
secret. This service only verifies them: signature, expiry, and
``type == "access"``. The ``role`` claim marks operators allowed to invoke
settlement and maintenance triggers.
"""

from jose import JWTError, jwt

from config.settings import settings
from src.rz_common.errors import InvalidCredentialsError


def decode_access_token(token: str) -> dict[str, str]:
    """Decode and validate an access token.

    Raises:
        InvalidCredentialsError: signature/expiry invalid, or not an access token.
    """
    try:
        payload: dict[str, str] = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],  # Explicit list prevents algorithm confusion
        )
    except JWTError:
        raise InvalidCredentialsError() from None

    if payload.get("type") != "access" or not payload.get("sub"):
        raise InvalidCredentialsError()
    return payload
