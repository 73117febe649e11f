from typing import Any, Literal

from fastapi import APIRouter, HTTPException
from sqlalchemy import func
from sqlmodel import Session, col, select

from forum import crud
from forum.api.deps import CurrentUser, OptionalUser, SessionDep, WidePageDep
from forum.api.presenters import posts_public
from forum.api.routes.discussions import get_discussion_or_404
from forum.core.permissions import Privilege, can_modify, has_privilege
from forum.models import (
    Like,
    LikeToggleResult,
    Message,
    Post,
    PostCreate,
    PostResponse,
    PostsPublic,
    PostUpdate,
    get_datetime_utc,
)

router = APIRouter(tags=["posts"])


def _get_post_or_404(session: Session, id: int) -> Post:
    post = session.get(Post, id)
    if not post:
        raise HTTPException(status_code=404, detail="Post not found")
    return post


@router.get("/discussions/{id}/posts", response_model=PostsPublic)
def read_discussion_posts(
    id: int,
    session: SessionDep,
    viewer: OptionalUser,
    page: WidePageDep,
    sort: Literal["recent", "oldest", "popular"] = "recent",
) -> Any:
    get_discussion_or_404(session, id)

    if sort == "oldest":
        order = [col(Post.created_at).asc(), col(Post.id).asc()]
    else:
        if sort == "popular":
            likes = (
                select(func.count(Like.id))
                .where(Like.post_id == Post.id)
                .correlate(Post)
                .scalar_subquery()
            )
            order = [likes.desc(), col(Post.created_at).desc()]
        else:
            order = [col(Post.created_at).desc()]
        order.append(col(Post.id).desc())

    total = session.exec(
        select(func.count()).select_from(Post).where(Post.discussion_id == id)
    ).one()
    posts = session.exec(
        select(Post)
        .where(Post.discussion_id == id)
        .order_by(*order)
        .offset(page.offset)
        .limit(page.limit)
    ).all()
    return PostsPublic(
        posts=posts_public(session, posts, viewer),
        pagination=page.pagination(total),
    )


@router.post("/discussions/{id}/posts", response_model=PostResponse, status_code=201)
def create_post(
    *, session: SessionDep, current_user: CurrentUser, id: int, post_in: PostCreate
) -> Any:
    discussion = get_discussion_or_404(session, id)
    closed = not discussion.is_open or discussion.is_locked
    if closed and not has_privilege(current_user, Privilege.MODERATOR):
        raise HTTPException(
            status_code=403, detail="This discussion is not accepting new posts"
        )

    post = Post(content=post_in.content, discussion_id=id, author_id=current_user.id)
    # a new post counts as activity on the thread
    discussion.updated_at = get_datetime_utc()
    session.add(post)
    session.add(discussion)
    session.commit()
    session.refresh(post)
    return PostResponse(
        message="Post created successfully",
        post=posts_public(session, [post], current_user)[0],
    )


@router.put("/posts/{id}", response_model=PostResponse)
def update_post(
    *, session: SessionDep, current_user: CurrentUser, id: int, post_in: PostUpdate
) -> Any:
    post = _get_post_or_404(session, id)
    if not can_modify(post.author_id, current_user, Privilege.MODERATOR):
        raise HTTPException(status_code=403, detail="Not enough permissions")
    post.content = post_in.content
    post.updated_at = get_datetime_utc()
    session.add(post)
    session.commit()
    session.refresh(post)
    return PostResponse(
        message="Post updated successfully",
        post=posts_public(session, [post], current_user)[0],
    )


@router.delete("/posts/{id}", response_model=Message)
def delete_post(session: SessionDep, current_user: CurrentUser, id: int) -> Any:
    post = _get_post_or_404(session, id)
    if not can_modify(post.author_id, current_user, Privilege.MODERATOR):
        raise HTTPException(status_code=403, detail="Not enough permissions")
    session.delete(post)
    session.commit()
    return Message(message="Post deleted successfully")


@router.post("/posts/{id}/like", response_model=LikeToggleResult)
def like_post(session: SessionDep, current_user: CurrentUser, id: int) -> Any:
    _get_post_or_404(session, id)
    liked = crud.toggle_like(
        session=session, user_id=current_user.id, target="post", target_id=id
    )
    return LikeToggleResult(
        message="Post liked" if liked else "Like removed",
        isLiked=liked,
        likes=crud.count_likes(session=session, target="post", target_id=id),
    )
