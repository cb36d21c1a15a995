"""FastAPI dependencies for dependency injection."""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status

from payroll_core.container import ServiceContainer


def get_container(request: Request) -> ServiceContainer:
    """Get the service container built at startup."""
    return request.app.state.container


async def get_actor_id(x_user_id: Annotated[str | None, Header()] = None) -> UUID:
    """Extract the acting user ID from header."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-User-ID header is required",
        )
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-User-ID format",
        )


# Type aliases for cleaner dependency injection
Services = Annotated[ServiceContainer, Depends(get_container)]
ActorId = Annotated[UUID, Depends(get_actor_id)]
