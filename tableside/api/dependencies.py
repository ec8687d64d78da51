from fastapi import Header, Request

from tableside.application.container import Container
from tableside.domain.exceptions import ValidationError


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_actor_id(x_actor_id: str | None = Header(default=None)) -> str:
    """The acting customer or staff member, passed explicitly per request."""
    if not x_actor_id or not x_actor_id.strip():
        raise ValidationError("X-Actor-Id header is required.")
    return x_actor_id.strip()
