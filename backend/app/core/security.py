"""Security primitives and authentication helpers."""

from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token", auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    id: int


async def get_current_user(token: str | None = Depends(oauth2_scheme)) -> CurrentUser:
    """Resolve the bearer token into the acting user.

    Tokens are the numeric user id issued by the back-office login.
    """
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    # TODO: switch to signed JWTs once the login service issues them.
    if not token.isdigit():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return CurrentUser(id=int(token))
