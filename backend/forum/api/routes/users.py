from typing import Any

from fastapi import APIRouter, File, HTTPException, UploadFile
from sqlalchemy import func, or_
from sqlmodel import Session, col, select

from forum import crud
from forum.api.deps import AdminUser, CurrentUser, SessionDep, WidePageDep
from forum.models import (
    Comment,
    Discussion,
    Like,
    Post,
    Prompt,
    SpecialtyPublic,
    User,
    UserActivityCounts,
    UserAdminUpdate,
    UserProfile,
    UserProfileResponse,
    UserPublic,
    UsersPublic,
    UserUpdateMe,
    UserUpdateResponse,
)
from forum.uploads import AVATAR_MAX_BYTES, remove_upload, save_upload

router = APIRouter(prefix="/users", tags=["users"])


def _count_by_author(session: Session, model: Any, column: Any, user_id: int) -> int:
    return session.exec(
        select(func.count()).select_from(model).where(column == user_id)
    ).one()


def user_profile(session: Session, user: User) -> UserProfile:
    counts = UserActivityCounts(
        prompts=_count_by_author(session, Prompt, Prompt.author_id, user.id),
        comments=_count_by_author(session, Comment, Comment.author_id, user.id),
        likes=_count_by_author(session, Like, Like.user_id, user.id),
        discussions=_count_by_author(session, Discussion, Discussion.author_id, user.id),
        posts=_count_by_author(session, Post, Post.author_id, user.id),
    )
    return UserProfile(
        **UserPublic.model_validate(user).model_dump(),
        specialties=[SpecialtyPublic.model_validate(s) for s in user.specialties],
        counts=counts,
    )


@router.get("", response_model=UsersPublic)
def read_users(
    session: SessionDep,
    current_user: AdminUser,
    page: WidePageDep,
    search: str | None = None,
) -> Any:
    """
    Retrieve users. Admins only.
    """
    conditions: list[Any] = []
    if search:
        pattern = f"%{search.strip()}%"
        conditions.append(
            or_(
                col(User.full_name).ilike(pattern),
                col(User.email).ilike(pattern),
                col(User.department).ilike(pattern),
            )
        )
    total = session.exec(select(func.count()).select_from(User).where(*conditions)).one()
    users = session.exec(
        select(User)
        .where(*conditions)
        .order_by(col(User.created_at).desc(), col(User.id).desc())
        .offset(page.offset)
        .limit(page.limit)
    ).all()
    return UsersPublic(
        users=[UserPublic.model_validate(u) for u in users],
        pagination=page.pagination(total),
    )


@router.get("/profile", response_model=UserProfileResponse)
def read_profile(session: SessionDep, current_user: CurrentUser) -> Any:
    return UserProfileResponse(user=user_profile(session, current_user))


@router.put("/profile", response_model=UserUpdateResponse)
def update_profile(
    *, session: SessionDep, current_user: CurrentUser, user_in: UserUpdateMe
) -> Any:
    """
    Update own profile. `specialties`, when given, replaces the current links.
    """
    try:
        user = crud.update_user_me(session=session, db_user=current_user, user_in=user_in)
    except ValueError as exc:
        session.rollback()
        raise HTTPException(status_code=400, detail=str(exc))
    return UserUpdateResponse(
        message="Profile updated successfully", user=UserPublic.model_validate(user)
    )


@router.post("/profile/avatar", response_model=UserUpdateResponse)
def upload_avatar(
    session: SessionDep, current_user: CurrentUser, avatar: UploadFile = File(...)
) -> Any:
    previous = current_user.avatar
    current_user.avatar = save_upload(avatar, "avatars", AVATAR_MAX_BYTES)
    session.add(current_user)
    session.commit()
    session.refresh(current_user)
    remove_upload(previous)
    return UserUpdateResponse(
        message="Avatar updated successfully",
        user=UserPublic.model_validate(current_user),
    )


@router.get("/{id}", response_model=UserProfileResponse)
def read_user(id: int, session: SessionDep) -> Any:
    user = session.get(User, id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return UserProfileResponse(user=user_profile(session, user))


@router.patch("/{id}", response_model=UserUpdateResponse)
def update_user_flags(
    *, session: SessionDep, current_user: AdminUser, id: int, user_in: UserAdminUpdate
) -> Any:
    """
    Change account flags. Admins cannot lock themselves out.
    """
    user = session.get(User, id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    update_dict = user_in.model_dump(exclude_unset=True, exclude_none=True)
    if user.id == current_user.id and (
        update_dict.get("is_active") is False or update_dict.get("is_admin") is False
    ):
        raise HTTPException(
            status_code=400, detail="Administrators cannot deactivate or demote themselves"
        )
    user.sqlmodel_update(update_dict)
    session.add(user)
    session.commit()
    session.refresh(user)
    return UserUpdateResponse(
        message="User updated successfully", user=UserPublic.model_validate(user)
    )
