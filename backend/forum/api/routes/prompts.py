from typing import Annotated, Any, Literal

from fastapi import APIRouter, HTTPException, Query
from sqlalchemy import String, cast, func, or_
from sqlmodel import Session, col, select

from forum import crud
from forum.api.deps import (
    CurrentUser,
    ModeratorUser,
    OptionalUser,
    PageDep,
    SessionDep,
)
from forum.api.presenters import prompt_detail, prompts_public
from forum.core.permissions import (
    Privilege,
    approval_after_edit,
    can_modify,
    has_privilege,
    is_owner,
)
from forum.models import (
    Like,
    LikeToggleResult,
    Message,
    Prompt,
    PromptCreate,
    PromptDetailResponse,
    PromptList,
    PromptModeration,
    PromptResponse,
    PromptsPublic,
    PromptUpdate,
    Specialty,
    get_datetime_utc,
)

router = APIRouter(prefix="/prompts", tags=["prompts"])

FEATURED_LIMIT = 6


def _like_count():
    return (
        select(func.count(Like.id))
        .where(Like.prompt_id == Prompt.id)
        .correlate(Prompt)
        .scalar_subquery()
    )


def _visible():
    return (col(Prompt.is_public).is_(True), col(Prompt.is_approved).is_(True))


def _get_prompt_or_404(session: Session, id: int) -> Prompt:
    prompt = session.get(Prompt, id)
    if not prompt:
        raise HTTPException(status_code=404, detail="Prompt not found")
    return prompt


def _check_specialty(session: Session, specialty_id: int | None) -> None:
    if specialty_id is not None and not session.get(Specialty, specialty_id):
        raise HTTPException(status_code=400, detail="Specialty not found")


@router.get("", response_model=PromptsPublic)
def read_prompts(
    session: SessionDep,
    viewer: OptionalUser,
    page: PageDep,
    search: str | None = None,
    category: str | None = None,
    author: Annotated[int | None, Query(ge=1)] = None,
    specialty: Annotated[int | None, Query(ge=1)] = None,
    featured: bool | None = None,
    sort: Literal["recent", "popular", "views"] = "recent",
) -> Any:
    """
    Public, approved prompts with filters and a stable sort.
    """
    conditions: list[Any] = list(_visible())
    if search:
        pattern = f"%{search.strip()}%"
        conditions.append(
            or_(
                col(Prompt.title).ilike(pattern),
                col(Prompt.description).ilike(pattern),
                cast(Prompt.tags, String).ilike(pattern),
            )
        )
    if category:
        conditions.append(Prompt.category == category)
    if author:
        conditions.append(Prompt.author_id == author)
    if specialty:
        conditions.append(Prompt.specialty_id == specialty)
    if featured:
        conditions.append(col(Prompt.is_featured).is_(True))

    if sort == "popular":
        order = [_like_count().desc(), col(Prompt.created_at).desc()]
    elif sort == "views":
        order = [col(Prompt.view_count).desc()]
    else:
        order = [col(Prompt.created_at).desc()]
    order.append(col(Prompt.id).desc())

    total = session.exec(
        select(func.count()).select_from(Prompt).where(*conditions)
    ).one()
    prompts = session.exec(
        select(Prompt)
        .where(*conditions)
        .order_by(*order)
        .offset(page.offset)
        .limit(page.limit)
    ).all()
    return PromptsPublic(
        prompts=prompts_public(session, prompts, viewer),
        pagination=page.pagination(total),
    )


@router.get("/featured", response_model=PromptList)
def read_featured_prompts(session: SessionDep, viewer: OptionalUser) -> Any:
    prompts = session.exec(
        select(Prompt)
        .where(*_visible(), col(Prompt.is_featured).is_(True))
        .order_by(col(Prompt.created_at).desc(), col(Prompt.id).desc())
        .limit(FEATURED_LIMIT)
    ).all()
    return PromptList(prompts=prompts_public(session, prompts, viewer))


@router.get("/{id}", response_model=PromptDetailResponse)
def read_prompt(id: int, session: SessionDep, viewer: OptionalUser) -> Any:
    """
    Prompt with full content. Each read counts as one view.
    """
    prompt = _get_prompt_or_404(session, id)
    visible = (
        (prompt.is_public and prompt.is_approved)
        or is_owner(prompt.author_id, viewer)
        or has_privilege(viewer, Privilege.MODERATOR)
    )
    if not visible:
        raise HTTPException(status_code=404, detail="Prompt not found")
    prompt = crud.increment_view_count(session=session, db_obj=prompt)
    return PromptDetailResponse(prompt=prompt_detail(session, prompt, viewer))


@router.get("/{id}/related", response_model=PromptList)
def read_related_prompts(
    id: int,
    session: SessionDep,
    viewer: OptionalUser,
    limit: Annotated[int, Query(ge=1, le=10)] = 3,
) -> Any:
    """
    Prompts in the same category: most liked, then most viewed, then newest.
    """
    prompt = _get_prompt_or_404(session, id)
    prompts = session.exec(
        select(Prompt)
        .where(*_visible(), Prompt.category == prompt.category, Prompt.id != prompt.id)
        .order_by(
            _like_count().desc(),
            col(Prompt.view_count).desc(),
            col(Prompt.created_at).desc(),
            col(Prompt.id).desc(),
        )
        .limit(limit)
    ).all()
    return PromptList(prompts=prompts_public(session, prompts, viewer))


@router.post("", response_model=PromptResponse, status_code=201)
def create_prompt(
    *, session: SessionDep, current_user: CurrentUser, prompt_in: PromptCreate
) -> Any:
    _check_specialty(session, prompt_in.specialty_id)
    prompt = Prompt.model_validate(prompt_in, update={"author_id": current_user.id})
    session.add(prompt)
    session.commit()
    session.refresh(prompt)
    return PromptResponse(
        message="Prompt created successfully",
        prompt=prompts_public(session, [prompt], current_user)[0],
    )


@router.put("/{id}", response_model=PromptResponse)
def update_prompt(
    *,
    session: SessionDep,
    current_user: CurrentUser,
    id: int,
    prompt_in: PromptUpdate,
) -> Any:
    prompt = _get_prompt_or_404(session, id)
    if not can_modify(prompt.author_id, current_user, Privilege.ADMIN):
        raise HTTPException(status_code=403, detail="Not enough permissions")
    # null clears the specialty; on any other field it means "unchanged"
    update_dict = {
        key: value
        for key, value in prompt_in.model_dump(exclude_unset=True).items()
        if value is not None or key == "specialty_id"
    }
    if "specialty_id" in update_dict:
        _check_specialty(session, update_dict["specialty_id"])
    prompt.sqlmodel_update(update_dict)
    prompt.is_approved = approval_after_edit(
        prompt.is_approved, current_user, Privilege.ADMIN
    )
    prompt.updated_at = get_datetime_utc()
    session.add(prompt)
    session.commit()
    session.refresh(prompt)
    return PromptResponse(
        message="Prompt updated successfully",
        prompt=prompts_public(session, [prompt], current_user)[0],
    )


@router.put("/{id}/moderation", response_model=PromptResponse)
def moderate_prompt(
    *,
    session: SessionDep,
    current_user: ModeratorUser,
    id: int,
    moderation_in: PromptModeration,
) -> Any:
    prompt = _get_prompt_or_404(session, id)
    prompt.sqlmodel_update(moderation_in.model_dump(exclude_unset=True, exclude_none=True))
    session.add(prompt)
    session.commit()
    session.refresh(prompt)
    return PromptResponse(
        message="Prompt moderation updated",
        prompt=prompts_public(session, [prompt], current_user)[0],
    )


@router.delete("/{id}", response_model=Message)
def delete_prompt(session: SessionDep, current_user: CurrentUser, id: int) -> Any:
    prompt = _get_prompt_or_404(session, id)
    if not can_modify(prompt.author_id, current_user, Privilege.ADMIN):
        raise HTTPException(status_code=403, detail="Not enough permissions")
    session.delete(prompt)
    session.commit()
    return Message(message="Prompt deleted successfully")


@router.post("/{id}/like", response_model=LikeToggleResult)
def like_prompt(session: SessionDep, current_user: CurrentUser, id: int) -> Any:
    _get_prompt_or_404(session, id)
    liked = crud.toggle_like(
        session=session, user_id=current_user.id, target="prompt", target_id=id
    )
    return LikeToggleResult(
        message="Prompt liked" if liked else "Like removed",
        isLiked=liked,
        likes=crud.count_likes(session=session, target="prompt", target_id=id),
    )
