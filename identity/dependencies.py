from fastapi import Depends, Query, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from identity.exceptions import InvalidTokenError
from identity.services.identity_service import IdentityService

_bearer = HTTPBearer(auto_error=False)


def get_identity_service(request: Request) -> IdentityService:
    """Return the shared service built during application startup."""
    return request.app.state.identity_service


def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    service: IdentityService = Depends(get_identity_service),
) -> int:
    """
    Resolve the caller's user id from an ``Authorization: Bearer`` header.

    Only the token's signature and expiry are checked; the session registry
    is not consulted.
    """
    if credentials is None:
        raise InvalidTokenError("bearer token is required")
    return service.authenticate(credentials.credentials)


class PaginationParams:
    """
    Reusable FastAPI dependency that parses pagination query parameters.

    Values are passed through unchecked; the service normalises
    ``page < 1`` to 1 and ``per_page < 1`` to the default page size.

    Attributes
    ----------
    page:
        1-based page number.
    per_page:
        Number of items per page.
    """

    def __init__(
        self,
        page: int = Query(1, description="Page number (1-based)."),
        per_page: int = Query(10, description="Number of items returned per page."),
    ) -> None:
        self.page = page
        self.per_page = per_page
