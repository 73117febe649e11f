"""Turn table rows into the public response shapes, with counts and like state."""
from collections.abc import Sequence

from sqlmodel import Session, select

from forum.crud import count_grouped, liked_ids
from forum.models import (
    AuthorPublic,
    Comment,
    CommentPublic,
    Discussion,
    DiscussionPublic,
    Like,
    Post,
    PostPublic,
    PostSummary,
    Prompt,
    PromptDetail,
    PromptPublic,
    SpecialtyPublic,
    User,
)


def author_public(user: User | None) -> AuthorPublic | None:
    if user is None or user.id is None:
        return None
    return AuthorPublic(
        id=user.id, full_name=user.full_name, avatar=user.avatar, job_title=user.job_title
    )


def _prompt_fields(prompt: Prompt) -> dict:
    return {
        "id": prompt.id,
        "title": prompt.title,
        "description": prompt.description,
        "category": prompt.category,
        "tags": list(prompt.tags or []),
        "view_count": prompt.view_count,
        "is_public": prompt.is_public,
        "is_approved": prompt.is_approved,
        "is_featured": prompt.is_featured,
        "created_at": prompt.created_at,
        "updated_at": prompt.updated_at,
        "author": author_public(prompt.author),
        "specialty": (
            SpecialtyPublic.model_validate(prompt.specialty) if prompt.specialty else None
        ),
    }


def prompts_public(
    session: Session, prompts: Sequence[Prompt], viewer: User | None
) -> list[PromptPublic]:
    ids = [p.id for p in prompts if p.id is not None]
    likes = count_grouped(session, Like.prompt_id, ids)
    comments = count_grouped(session, Comment.prompt_id, ids)
    liked = liked_ids(session, viewer.id if viewer else None, "prompt", ids)
    return [
        PromptPublic(
            **_prompt_fields(p),
            likes=likes.get(p.id, 0),
            comments=comments.get(p.id, 0),
            isLiked=p.id in liked,
        )
        for p in prompts
    ]


def prompt_detail(session: Session, prompt: Prompt, viewer: User | None) -> PromptDetail:
    summary = prompts_public(session, [prompt], viewer)[0]
    return PromptDetail(**summary.model_dump(), content=prompt.content)


def comments_tree(
    session: Session, roots: Sequence[Comment], viewer: User | None
) -> list[CommentPublic]:
    """Attach replies (oldest first) to their root comments."""
    root_ids = [c.id for c in roots]
    replies: list[Comment] = []
    if root_ids:
        replies = list(
            session.exec(
                select(Comment)
                .where(Comment.parent_id.in_(root_ids))  # type: ignore[union-attr]
                .order_by(Comment.created_at.asc(), Comment.id.asc())  # type: ignore[union-attr]
            ).all()
        )

    all_ids = root_ids + [r.id for r in replies]
    likes = count_grouped(session, Like.comment_id, all_ids)
    liked = liked_ids(session, viewer.id if viewer else None, "comment", all_ids)

    def build(comment: Comment) -> CommentPublic:
        return CommentPublic(
            id=comment.id,
            content=comment.content,
            parent_id=comment.parent_id,
            is_approved=comment.is_approved,
            created_at=comment.created_at,
            updated_at=comment.updated_at,
            author=author_public(comment.author),
            likes=likes.get(comment.id, 0),
            isLiked=comment.id in liked,
        )

    by_parent: dict[int, list[CommentPublic]] = {}
    for reply in replies:
        by_parent.setdefault(reply.parent_id, []).append(build(reply))

    tree = []
    for root in roots:
        node = build(root)
        node.replies = by_parent.get(root.id, [])
        tree.append(node)
    return tree


def comment_public(session: Session, comment: Comment, viewer: User | None) -> CommentPublic:
    return comments_tree(session, [comment], viewer)[0]


def posts_public(
    session: Session, posts: Sequence[Post], viewer: User | None
) -> list[PostPublic]:
    ids = [p.id for p in posts if p.id is not None]
    likes = count_grouped(session, Like.post_id, ids)
    comments = count_grouped(session, Comment.post_id, ids)
    liked = liked_ids(session, viewer.id if viewer else None, "post", ids)
    return [
        PostPublic(
            id=p.id,
            discussion_id=p.discussion_id,
            content=p.content,
            is_approved=p.is_approved,
            created_at=p.created_at,
            updated_at=p.updated_at,
            author=author_public(p.author),
            likes=likes.get(p.id, 0),
            comments=comments.get(p.id, 0),
            isLiked=p.id in liked,
        )
        for p in posts
    ]


def discussions_public(
    session: Session, discussions: Sequence[Discussion]
) -> list[DiscussionPublic]:
    ids = [d.id for d in discussions if d.id is not None]
    post_counts = count_grouped(session, Post.discussion_id, ids)

    result = []
    for d in discussions:
        last = session.exec(
            select(Post)
            .where(Post.discussion_id == d.id)
            .order_by(Post.created_at.desc(), Post.id.desc())  # type: ignore[union-attr]
        ).first()
        result.append(
            DiscussionPublic(
                id=d.id,
                title=d.title,
                description=d.description,
                category=d.category,
                is_open=d.is_open,
                is_pinned=d.is_pinned,
                is_locked=d.is_locked,
                view_count=d.view_count,
                created_at=d.created_at,
                updated_at=d.updated_at,
                author=author_public(d.author),
                posts=post_counts.get(d.id, 0),
                last_post=(
                    PostSummary(
                        id=last.id,
                        content=last.content,
                        created_at=last.created_at,
                        author=author_public(last.author),
                    )
                    if last
                    else None
                ),
            )
        )
    return result
