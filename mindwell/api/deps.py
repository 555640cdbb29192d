"""FastAPI dependencies shared by the route modules."""

from fastapi import Request

from mindwell.core.exceptions import AuthenticationError
from mindwell.services.finalizer import EntryFinalizer
from mindwell.services.pipeline import ProcessingPipeline


def get_pipeline(request: Request) -> ProcessingPipeline:
    return request.app.state.pipeline


def get_finalizer(request: Request) -> EntryFinalizer:
    return request.app.state.finalizer


def current_user_id(request: Request) -> int:
    """Return the user resolved by ``BearerAuthMiddleware``."""
    user_id = getattr(request.state, "user_id", None)
    if user_id is None:
        raise AuthenticationError()
    return user_id
