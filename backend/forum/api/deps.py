import math
from collections.abc import Generator
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, HTTPException, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt.exceptions import InvalidTokenError
from pydantic import ValidationError
from sqlmodel import Session

from forum.core.db import engine
from forum.core.permissions import Privilege, has_privilege
from forum.core.security import decode_access_token
from forum.models import Pagination, TokenPayload, User

bearer_scheme = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


SessionDep = Annotated[Session, Depends(get_db)]
TokenDep = Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)]


def _resolve_user(session: Session, token: str) -> User | None:
    """Verify `token` and load its active user, or None on any failure."""
    try:
        payload = decode_access_token(token)
        token_data = TokenPayload(**payload)
    except (InvalidTokenError, ValidationError):
        return None
    if not token_data.sub or not token_data.sub.isdigit():
        return None
    user = session.get(User, int(token_data.sub))
    if not user or not user.is_active:
        return None
    return user


def get_current_user(session: SessionDep, credentials: TokenDep) -> User:
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=401,
            detail="Access token required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    user = _resolve_user(session, credentials.credentials)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail="Invalid token or inactive user",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def get_optional_user(session: SessionDep, credentials: TokenDep) -> User | None:
    if credentials is None or not credentials.credentials:
        return None
    return _resolve_user(session, credentials.credentials)


CurrentUser = Annotated[User, Depends(get_current_user)]
OptionalUser = Annotated[User | None, Depends(get_optional_user)]


def require_admin(current_user: CurrentUser) -> User:
    if not has_privilege(current_user, Privilege.ADMIN):
        raise HTTPException(
            status_code=403, detail="Access denied. Administrator privileges required."
        )
    return current_user


def require_moderator(current_user: CurrentUser) -> User:
    if not has_privilege(current_user, Privilege.MODERATOR):
        raise HTTPException(
            status_code=403, detail="Access denied. Moderator privileges required."
        )
    return current_user


AdminUser = Annotated[User, Depends(require_admin)]
ModeratorUser = Annotated[User, Depends(require_moderator)]


@dataclass
class PageParams:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def pagination(self, total: int) -> Pagination:
        return Pagination(
            page=self.page,
            limit=self.limit,
            total=total,
            pages=max(1, math.ceil(total / self.limit)),
        )


def page_params(
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> PageParams:
    return PageParams(page=page, limit=limit)


def page_params_20(
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> PageParams:
    return PageParams(page=page, limit=limit)


PageDep = Annotated[PageParams, Depends(page_params)]
# posts, comments and users default to larger pages
WidePageDep = Annotated[PageParams, Depends(page_params_20)]
