"""FastAPI dependencies."""

from typing import AsyncIterator, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from signal_admin.db.session import AsyncSessionLocal, get_db
from signal_admin.realtime.notifier import ChangeNotifier
from signal_admin.repositories.admins import check_admin_access


async def get_database() -> AsyncIterator[AsyncSession]:
    """Dependency for database session."""
    async for session in get_db():
        yield session


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for long-lived feeds that outlive the request session."""
    return AsyncSessionLocal


def get_notifier(request: Request) -> Optional[ChangeNotifier]:
    """The app's change notifier, or None when realtime is disabled."""
    return getattr(request.app.state, "notifier", None)


async def require_admin(
    x_admin_email: Optional[str] = Header(None, alias="X-Admin-Email"),
    db: AsyncSession = Depends(get_database),
) -> str:
    """
    Dependency to require an authenticated admin.

    The auth layer in front of the API puts the signed-in user's email in
    X-Admin-Email; access is granted when that email is listed in admins.

    Raises:
        HTTPException: 401 if header missing, 403 if not an admin
    """
    if not x_admin_email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Admin-Email header",
        )

    if not await check_admin_access(db, x_admin_email):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )

    return x_admin_email.strip().lower()
