from datetime import timedelta
from typing import Any

from fastapi import APIRouter
from sqlalchemy import func
from sqlmodel import Session, col, select

from forum.api.deps import OptionalUser, SessionDep
from forum.api.presenters import author_public, prompts_public
from forum.crud import count_grouped
from forum.models import (
    Activity,
    CategoriesStats,
    CategoryCount,
    Comment,
    DashboardStats,
    Discussion,
    Prompt,
    PromptStats,
    Specialty,
    SpecialtyPublic,
    StatsTotals,
    User,
)

router = APIRouter(prefix="/stats", tags=["stats"])

TOP_PROMPTS = 3
RECENT_ACTIVITIES = 20
SOURCE_ROWS = 20
# created_at and updated_at are stamped separately, so tiny gaps are not edits
EDIT_THRESHOLD = timedelta(seconds=1)


def _count(session: Session, model: Any, *conditions: Any) -> int:
    return session.exec(select(func.count()).select_from(model).where(*conditions)).one()


def _categories(session: Session) -> list[CategoryCount]:
    specialties = session.exec(select(Specialty).order_by(col(Specialty.name))).all()
    counts = count_grouped(session, Prompt.specialty_id, [s.id for s in specialties])
    return [
        CategoryCount(
            **SpecialtyPublic.model_validate(s).model_dump(),
            totalPrompts=counts.get(s.id, 0),
        )
        for s in specialties
    ]


def _edited(row: Any) -> bool:
    return bool(
        row.created_at and row.updated_at and row.updated_at - row.created_at > EDIT_THRESHOLD
    )


def _lifecycle(kind: str, row: Any, **refs: int) -> list[Activity]:
    """A "created" event, plus an "updated" one when the row was edited later."""
    user = author_public(row.author)
    events = [
        Activity(type=kind, action="created", id=row.id, title=row.title,
                 created_at=row.created_at, user=user, **refs)
    ]
    if _edited(row):
        events.append(
            Activity(type=kind, action="updated", id=row.id, title=row.title,
                     created_at=row.updated_at, user=user, **refs)
        )
    return events


def recent_activities(session: Session, limit: int = RECENT_ACTIVITIES) -> list[Activity]:
    """Merge prompt, discussion, comment and signup events, newest first."""
    activities: list[Activity] = []

    prompts = session.exec(
        select(Prompt).order_by(col(Prompt.updated_at).desc()).limit(SOURCE_ROWS)
    ).all()
    for p in prompts:
        activities.extend(_lifecycle("prompt", p, prompt_id=p.id))

    discussions = session.exec(
        select(Discussion).order_by(col(Discussion.updated_at).desc()).limit(SOURCE_ROWS)
    ).all()
    for d in discussions:
        activities.extend(_lifecycle("discussion", d, discussion_id=d.id))

    comments = session.exec(
        select(Comment).order_by(col(Comment.created_at).desc()).limit(SOURCE_ROWS)
    ).all()
    for c in comments:
        activities.append(
            Activity(
                type="comment",
                id=c.id,
                content=c.content,
                created_at=c.created_at,
                user=author_public(c.author),
                prompt_id=c.prompt_id,
                post_id=c.post_id,
            )
        )

    users = session.exec(
        select(User)
        .where(col(User.is_active).is_(True))
        .order_by(col(User.created_at).desc())
        .limit(SOURCE_ROWS)
    ).all()
    for u in users:
        activities.append(
            Activity(type="user", id=u.id, created_at=u.created_at, user=author_public(u))
        )

    dated = [a for a in activities if a.created_at is not None]
    dated.sort(key=lambda a: a.created_at, reverse=True)
    return dated[:limit]


@router.get("/dashboard", response_model=DashboardStats)
def read_dashboard(session: SessionDep, viewer: OptionalUser) -> Any:
    """
    Totals, most viewed prompts, categories and recent activity.
    """
    top = session.exec(
        select(Prompt)
        .where(col(Prompt.is_public).is_(True), col(Prompt.is_approved).is_(True))
        .order_by(col(Prompt.view_count).desc(), col(Prompt.id).desc())
        .limit(TOP_PROMPTS)
    ).all()
    return DashboardStats(
        totals=StatsTotals(
            prompts=_count(session, Prompt),
            activeUsers=_count(session, User, col(User.is_active).is_(True)),
        ),
        topPrompts=prompts_public(session, top, viewer),
        categories=_categories(session),
        recentActivities=recent_activities(session),
    )


@router.get("/prompts", response_model=PromptStats)
def read_prompt_stats(session: SessionDep) -> Any:
    return PromptStats(
        total=_count(session, Prompt),
        public=_count(session, Prompt, col(Prompt.is_public).is_(True)),
        approved=_count(session, Prompt, col(Prompt.is_approved).is_(True)),
        featured=_count(session, Prompt, col(Prompt.is_featured).is_(True)),
    )


@router.get("/categories", response_model=CategoriesStats)
def read_category_stats(session: SessionDep) -> Any:
    return CategoriesStats(categories=_categories(session))
