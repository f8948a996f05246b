from config import get_settings
from db.database import get_db
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from services.categories import CategoryService
from sqlalchemy.ext.asyncio import AsyncSession

settings = get_settings()
security = HTTPBearer(auto_error=False)


def _credentials_exception(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_owner_id(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> int:
    """Required auth - returns the owner id from the token's ``sub`` claim.

    Tokens are issued by the auth service; this only verifies the signature
    and extracts the identity.
    """
    if credentials is None:
        raise _credentials_exception("Not authenticated")

    token = credentials.credentials.strip()

    try:
        payload = jwt.decode(
            token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM]
        )
    except JWTError:
        raise _credentials_exception("Invalid token")

    subject = payload.get("sub")
    if subject is None:
        raise _credentials_exception("Invalid token")

    try:
        return int(subject)
    except (TypeError, ValueError):
        raise _credentials_exception("Invalid token")


async def get_category_service(
    db: AsyncSession = Depends(get_db),
) -> CategoryService:
    return CategoryService(db)
