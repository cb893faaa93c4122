"""
FastAPI dependencies for authentication and authorization.

This module provides dependency functions for bearer-token authentication,
role-based access control, database sessions and the payment gateway.
"""

from typing import Annotated, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from makoexpress.core.logging import get_logger, set_user_id
from makoexpress.core.security import TokenError, get_token_user_id
from makoexpress.database.connection import get_db
from makoexpress.database.models.driver import Driver
from makoexpress.database.models.user import User, UserRole
from makoexpress.services.drivers.repository import DriverRepository
from makoexpress.services.payments.makopay_client import MakoPayClient, get_makopay_client

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """
    Validate the bearer token and load the authenticated user.

    Raises:
        HTTPException: 401 if the token is missing or invalid, or the user
            does not exist; 403 if the account is inactive
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        logger.warning("Authentication failed: No credentials provided")
        raise credentials_exception

    try:
        user_id = get_token_user_id(credentials.credentials)
    except TokenError as e:
        logger.warning("Authentication failed: Token rejected", code=e.code)
        raise credentials_exception from e

    user = await db.get(User, user_id)
    if user is None:
        logger.warning("Authentication failed: User not found", user_id=str(user_id))
        raise credentials_exception

    if not user.is_active:
        logger.warning("Authentication failed: User account is inactive", user_id=str(user.id))
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive user account",
        )

    set_user_id(str(user.id))
    return user


def require_role(*allowed_roles: UserRole):
    """
    Create a dependency that requires specific user roles.

    Example:
        @router.get("/stats", dependencies=[Depends(require_role(UserRole.ADMIN))])
    """

    async def role_checker(
        current_user: Annotated[User, Depends(get_current_user)],
    ) -> User:
        if current_user.role not in allowed_roles:
            logger.warning(
                "Access denied: Insufficient permissions",
                user_id=str(current_user.id),
                user_role=current_user.role.value,
                required_roles=[role.value for role in allowed_roles],
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_user

    return role_checker


async def get_current_admin(
    current_user: Annotated[User, Depends(require_role(UserRole.ADMIN))],
) -> User:
    return current_user


async def get_current_driver(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Driver:
    """
    Resolve the driver profile of the authenticated user.

    Raises:
        HTTPException: 403 if the user has no driver profile
    """
    driver = await DriverRepository(db).get_driver_by_user_id(current_user.id)
    if driver is None:
        logger.warning("Access denied: No driver profile", user_id=str(current_user.id))
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Driver profile required",
        )
    return driver


def get_gateway() -> MakoPayClient:
    """Payment gateway dependency; overridden in tests."""
    return get_makopay_client()


CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentAdmin = Annotated[User, Depends(get_current_admin)]
CurrentDriver = Annotated[Driver, Depends(get_current_driver)]
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
Gateway = Annotated[MakoPayClient, Depends(get_gateway)]
