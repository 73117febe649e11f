from typing import Any, Literal

from fastapi import APIRouter, HTTPException
from sqlalchemy import func, or_
from sqlmodel import Session, col, select

from forum import crud
from forum.api.deps import CurrentUser, PageDep, SessionDep
from forum.api.presenters import discussions_public
from forum.core.permissions import Privilege, can_modify, has_privilege
from forum.models import (
    Discussion,
    DiscussionCreate,
    DiscussionDetailResponse,
    DiscussionResponse,
    DiscussionsPublic,
    DiscussionUpdate,
    Message,
    Post,
    get_datetime_utc,
)

router = APIRouter(prefix="/discussions", tags=["discussions"])

# flags only a moderator may change
MODERATION_FIELDS = ("is_pinned", "is_locked")


def get_discussion_or_404(session: Session, id: int) -> Discussion:
    discussion = session.get(Discussion, id)
    if not discussion:
        raise HTTPException(status_code=404, detail="Discussion not found")
    return discussion


def _post_count():
    return (
        select(func.count(Post.id))
        .where(Post.discussion_id == Discussion.id)
        .correlate(Discussion)
        .scalar_subquery()
    )


@router.get("", response_model=DiscussionsPublic)
def read_discussions(
    session: SessionDep,
    page: PageDep,
    search: str | None = None,
    category: str | None = None,
    pinned: bool | None = None,
    sort: Literal["recent", "views", "posts"] = "recent",
) -> Any:
    """
    Discussions with filters. The default sort keeps pinned threads on top.
    """
    conditions: list[Any] = []
    if search:
        pattern = f"%{search.strip()}%"
        conditions.append(
            or_(
                col(Discussion.title).ilike(pattern),
                col(Discussion.description).ilike(pattern),
            )
        )
    if category:
        conditions.append(Discussion.category == category)
    if pinned:
        conditions.append(col(Discussion.is_pinned).is_(True))

    if sort == "views":
        order = [col(Discussion.view_count).desc()]
    elif sort == "posts":
        order = [_post_count().desc()]
    else:
        order = [col(Discussion.is_pinned).desc(), col(Discussion.updated_at).desc()]
    order.append(col(Discussion.id).desc())

    total = session.exec(
        select(func.count()).select_from(Discussion).where(*conditions)
    ).one()
    discussions = session.exec(
        select(Discussion)
        .where(*conditions)
        .order_by(*order)
        .offset(page.offset)
        .limit(page.limit)
    ).all()
    return DiscussionsPublic(
        discussions=discussions_public(session, discussions),
        pagination=page.pagination(total),
    )


@router.get("/{id}", response_model=DiscussionDetailResponse)
def read_discussion(id: int, session: SessionDep) -> Any:
    discussion = get_discussion_or_404(session, id)
    discussion = crud.increment_view_count(session=session, db_obj=discussion)
    return DiscussionDetailResponse(
        discussion=discussions_public(session, [discussion])[0]
    )


@router.post("", response_model=DiscussionResponse, status_code=201)
def create_discussion(
    *, session: SessionDep, current_user: CurrentUser, discussion_in: DiscussionCreate
) -> Any:
    discussion = Discussion.model_validate(
        discussion_in, update={"author_id": current_user.id}
    )
    session.add(discussion)
    session.commit()
    session.refresh(discussion)
    return DiscussionResponse(
        message="Discussion created successfully",
        discussion=discussions_public(session, [discussion])[0],
    )


@router.put("/{id}", response_model=DiscussionResponse)
def update_discussion(
    *,
    session: SessionDep,
    current_user: CurrentUser,
    id: int,
    discussion_in: DiscussionUpdate,
) -> Any:
    """
    Author or moderator edits the thread; pin and lock are honoured for
    moderators only and ignored otherwise.
    """
    discussion = get_discussion_or_404(session, id)
    if not can_modify(discussion.author_id, current_user, Privilege.MODERATOR):
        raise HTTPException(status_code=403, detail="Not enough permissions")

    update_dict = discussion_in.model_dump(exclude_unset=True, exclude_none=True)
    if not has_privilege(current_user, Privilege.MODERATOR):
        for field in MODERATION_FIELDS:
            update_dict.pop(field, None)
    discussion.sqlmodel_update(update_dict)
    discussion.updated_at = get_datetime_utc()
    session.add(discussion)
    session.commit()
    session.refresh(discussion)
    return DiscussionResponse(
        message="Discussion updated successfully",
        discussion=discussions_public(session, [discussion])[0],
    )


@router.delete("/{id}", response_model=Message)
def delete_discussion(session: SessionDep, current_user: CurrentUser, id: int) -> Any:
    discussion = get_discussion_or_404(session, id)
    if not can_modify(discussion.author_id, current_user, Privilege.MODERATOR):
        raise HTTPException(status_code=403, detail="Not enough permissions")
    session.delete(discussion)
    session.commit()
    return Message(message="Discussion deleted successfully")
