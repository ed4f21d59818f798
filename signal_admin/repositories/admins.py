"""Admin membership lookups for the auth layer."""

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from signal_admin.db.models import Admin
from signal_admin.db.transactions import translate_store_error


async def check_admin_access(db: AsyncSession, email: str) -> bool:
    """True if ``email`` has a membership record in admins."""
    email = (email or "").strip().lower()
    if not email:
        return False
    try:
        result = await db.execute(select(Admin.id).where(Admin.email == email))
    except SQLAlchemyError as e:
        raise translate_store_error(e, "check_admin_access", email) from e
    return result.scalar_one_or_none() is not None


async def add_admin(db: AsyncSession, email: str) -> Admin:
    """Grant console access to ``email``."""
    admin = Admin(email=email.strip().lower())
    db.add(admin)
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise translate_store_error(e, "add_admin", email) from e
    return admin
