"""
ServiceMatch Backend - Shared Route Dependencies
=================================================

FastAPI dependencies that pull components off the application container and
identify the caller.

Identity:
    Authentication lives in front of this service. The gateway forwards the
    authenticated user as the X-User-ID header; it is only used for
    ownership checks.
"""

from uuid import UUID

from fastapi import Header, Request

from servicematch.container import ServiceContainer
from servicematch.exceptions import ValidationError


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


async def get_current_user_id(
    x_user_id: str | None = Header(default=None, alias="X-User-ID"),
) -> UUID:
    if not x_user_id:
        raise ValidationError(message="X-User-ID header is required", field="X-User-ID")
    try:
        return UUID(x_user_id)
    except ValueError:
        raise ValidationError(message="X-User-ID must be a UUID", field="X-User-ID")
