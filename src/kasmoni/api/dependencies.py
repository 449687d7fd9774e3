"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from kasmoni.database import init_db
from kasmoni.services.audit_logger import Actor
from kasmoni.services.lifecycle import PaymentLifecycleManager
from kasmoni.services.status_aggregator import StatusAggregator


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    _, session_factory = init_db()
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_actor(
    request: Request,
    x_user_id: Annotated[int | None, Header()] = None,
    x_username: Annotated[str | None, Header()] = None,
    user_agent: Annotated[str | None, Header()] = None,
) -> Actor:
    """Identity of the caller, passed through to the audit trail as given."""
    return Actor(
        user_id=x_user_id,
        username=x_username,
        ip_address=request.client.host if request.client else None,
        user_agent=user_agent,
    )


async def get_lifecycle_manager(
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> PaymentLifecycleManager:
    return PaymentLifecycleManager(db)


async def get_status_aggregator(
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> StatusAggregator:
    return StatusAggregator(db)


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
CurrentActor = Annotated[Actor, Depends(get_actor)]
Lifecycle = Annotated[PaymentLifecycleManager, Depends(get_lifecycle_manager)]
Aggregator = Annotated[StatusAggregator, Depends(get_status_aggregator)]
