"""FastAPI dependencies: get_current_user / require_admin.

Usage in any protected router:
    @router.get("/protected")
    async def protected(user: Annotated[CurrentUser, Depends(get_current_user)]):
        ...
"""

from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from src.rz_common.errors import AdminRequiredError, InvalidCredentialsError
from src.rz_gateway.auth.jwt_handler import decode_access_token

# tokenUrl points at the external auth service; only used by Swagger UI
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")

_CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Invalid or expired token",
    headers={"WWW-Authenticate": "Bearer"},
)


@dataclass(frozen=True)
class CurrentUser:
    user_id: str
    is_admin: bool = False


async def get_current_user(token: str = Depends(oauth2_scheme)) -> CurrentUser:
    """Validate the Bearer token and return the caller's identity."""
    try:
        payload = decode_access_token(token)
    except InvalidCredentialsError:
        raise _CREDENTIALS_EXCEPTION from None
    return CurrentUser(user_id=payload["sub"], is_admin=payload.get("role") == "admin")


async def require_admin(
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """Settlement, rollover and reconciliation triggers are operator-only."""
    if not current_user.is_admin:
        raise AdminRequiredError()
    return current_user
