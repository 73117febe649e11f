"""
Threaded comments on prompts and on discussion posts.

Only one level of nesting exists: a reply always hangs off a root comment.
"""
from typing import Any

from fastapi import APIRouter, HTTPException
from sqlalchemy import func
from sqlmodel import Session, col, select

from forum import crud
from forum.api.deps import (
    CurrentUser,
    OptionalUser,
    PageParams,
    SessionDep,
    WidePageDep,
)
from forum.api.presenters import comment_public, comments_tree
from forum.core.permissions import Privilege, approval_after_edit, can_modify
from forum.models import (
    Comment,
    CommentCreate,
    CommentResponse,
    CommentsPublic,
    CommentUpdate,
    LikeToggleResult,
    Message,
    Post,
    Prompt,
    User,
    get_datetime_utc,
)

router = APIRouter(tags=["comments"])


def _list_comments(
    session: Session, column: Any, target_id: int, viewer: User | None, page: PageParams
) -> CommentsPublic:
    conditions = (column == target_id, col(Comment.parent_id).is_(None))
    total = session.exec(
        select(func.count()).select_from(Comment).where(*conditions)
    ).one()
    roots = session.exec(
        select(Comment)
        .where(*conditions)
        .order_by(col(Comment.created_at).desc(), col(Comment.id).desc())
        .offset(page.offset)
        .limit(page.limit)
    ).all()
    return CommentsPublic(
        comments=comments_tree(session, roots, viewer),
        pagination=page.pagination(total),
    )


def _create_comment(
    session: Session,
    author: User,
    comment_in: CommentCreate,
    field: str,
    target_id: int,
) -> Comment:
    parent_id = comment_in.parent_id
    if parent_id is not None:
        parent = session.get(Comment, parent_id)
        if not parent or getattr(parent, field) != target_id:
            raise HTTPException(status_code=400, detail="Parent comment not found")
        # replies to a reply are attached to the thread's root
        parent_id = parent.parent_id or parent.id

    comment = Comment(
        content=comment_in.content,
        author_id=author.id,
        parent_id=parent_id,
        **{field: target_id},
    )
    session.add(comment)
    session.commit()
    session.refresh(comment)
    return comment


def _get_comment_or_404(session: Session, id: int) -> Comment:
    comment = session.get(Comment, id)
    if not comment:
        raise HTTPException(status_code=404, detail="Comment not found")
    return comment


@router.get("/prompts/{id}/comments", response_model=CommentsPublic)
def read_prompt_comments(
    id: int, session: SessionDep, viewer: OptionalUser, page: WidePageDep
) -> Any:
    if not session.get(Prompt, id):
        raise HTTPException(status_code=404, detail="Prompt not found")
    return _list_comments(session, Comment.prompt_id, id, viewer, page)


@router.post("/prompts/{id}/comments", response_model=CommentResponse, status_code=201)
def create_prompt_comment(
    *, session: SessionDep, current_user: CurrentUser, id: int, comment_in: CommentCreate
) -> Any:
    if not session.get(Prompt, id):
        raise HTTPException(status_code=404, detail="Prompt not found")
    comment = _create_comment(session, current_user, comment_in, "prompt_id", id)
    return CommentResponse(
        message="Comment created successfully",
        comment=comment_public(session, comment, current_user),
    )


@router.get("/posts/{id}/comments", response_model=CommentsPublic)
def read_post_comments(
    id: int, session: SessionDep, viewer: OptionalUser, page: WidePageDep
) -> Any:
    if not session.get(Post, id):
        raise HTTPException(status_code=404, detail="Post not found")
    return _list_comments(session, Comment.post_id, id, viewer, page)


@router.post("/posts/{id}/comments", response_model=CommentResponse, status_code=201)
def create_post_comment(
    *, session: SessionDep, current_user: CurrentUser, id: int, comment_in: CommentCreate
) -> Any:
    if not session.get(Post, id):
        raise HTTPException(status_code=404, detail="Post not found")
    comment = _create_comment(session, current_user, comment_in, "post_id", id)
    return CommentResponse(
        message="Comment created successfully",
        comment=comment_public(session, comment, current_user),
    )


@router.put("/comments/{id}", response_model=CommentResponse)
def update_comment(
    *, session: SessionDep, current_user: CurrentUser, id: int, comment_in: CommentUpdate
) -> Any:
    comment = _get_comment_or_404(session, id)
    if not can_modify(comment.author_id, current_user, Privilege.MODERATOR):
        raise HTTPException(status_code=403, detail="Not enough permissions")
    comment.content = comment_in.content
    comment.is_approved = approval_after_edit(comment.is_approved, current_user)
    comment.updated_at = get_datetime_utc()
    session.add(comment)
    session.commit()
    session.refresh(comment)
    return CommentResponse(
        message="Comment updated successfully",
        comment=comment_public(session, comment, current_user),
    )


@router.delete("/comments/{id}", response_model=Message)
def delete_comment(session: SessionDep, current_user: CurrentUser, id: int) -> Any:
    comment = _get_comment_or_404(session, id)
    if not can_modify(comment.author_id, current_user, Privilege.MODERATOR):
        raise HTTPException(status_code=403, detail="Not enough permissions")
    session.delete(comment)
    session.commit()
    return Message(message="Comment deleted successfully")


@router.post("/comments/{id}/like", response_model=LikeToggleResult)
def like_comment(session: SessionDep, current_user: CurrentUser, id: int) -> Any:
    _get_comment_or_404(session, id)
    liked = crud.toggle_like(
        session=session, user_id=current_user.id, target="comment", target_id=id
    )
    return LikeToggleResult(
        message="Comment liked" if liked else "Like removed",
        isLiked=liked,
        likes=crud.count_likes(session=session, target="comment", target_id=id),
    )
