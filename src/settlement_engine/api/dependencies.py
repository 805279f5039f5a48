"""FastAPI dependencies for dependency injection."""

from collections.abc import Generator
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from settlement_engine.database import init_db


def get_db_session() -> Generator[Session, None, None]:
    """Get database session dependency."""
    _, factory = init_db()
    session = factory()
    try:
        yield session
    finally:
        session.close()


def get_actor_id(
    x_actor_id: Annotated[str | None, Header()] = None
) -> UUID | None:
    """Extract the acting user from header, if sent."""
    if not x_actor_id:
        return None
    try:
        return UUID(x_actor_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-Actor-ID format",
        )


# Type aliases for cleaner dependency injection
DbSession = Annotated[Session, Depends(get_db_session)]
ActorId = Annotated[UUID | None, Depends(get_actor_id)]
