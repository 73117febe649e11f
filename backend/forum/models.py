import re
from datetime import datetime, timezone
from typing import Annotated

from pydantic import EmailStr, PositiveInt, StringConstraints, field_validator
from sqlalchemy import JSON, DateTime, UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel


def get_datetime_utc() -> datetime:
    return datetime.now(timezone.utc)


Trimmed = Annotated[str, StringConstraints(strip_whitespace=True)]
HEX_COLOR_PATTERN = r"^#(?:[0-9a-fA-F]{3}){1,2}$"


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserSpecialtyLink(SQLModel, table=True):
    user_id: int = Field(foreign_key="user.id", primary_key=True, ondelete="CASCADE")
    specialty_id: int = Field(
        foreign_key="specialty.id", primary_key=True, ondelete="CASCADE"
    )


# Database model, database table inferred from class name
class User(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    email: str = Field(unique=True, index=True, max_length=255)
    hashed_password: str | None = Field(default=None)
    google_sub: str | None = Field(default=None, unique=True, max_length=255)
    full_name: str | None = Field(default=None, max_length=255)
    department: str | None = Field(default=None, max_length=255)
    job_title: str | None = Field(default=None, max_length=255)
    registration_number: str | None = Field(default=None, unique=True, max_length=255)
    phone: str | None = Field(default=None, max_length=255)
    location: str | None = Field(default=None, max_length=255)
    bio: str | None = Field(default=None, max_length=2000)
    avatar: str | None = Field(default=None, max_length=512)
    is_active: bool = True
    is_admin: bool = False
    is_moderator: bool = False
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    last_login_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    specialties: list["Specialty"] = Relationship(link_model=UserSpecialtyLink)


# Properties to receive via API on registration
class UserRegister(SQLModel):
    email: EmailStr = Field(max_length=255)
    password: str = Field(min_length=6, max_length=128)
    full_name: Trimmed = Field(min_length=2, max_length=255)
    department: Trimmed | None = Field(default=None, max_length=255)
    job_title: Trimmed | None = Field(default=None, max_length=255)
    registration_number: Trimmed | None = Field(default=None, max_length=255)
    phone: Trimmed | None = Field(default=None, max_length=255)
    location: Trimmed | None = Field(default=None, max_length=255)
    bio: Trimmed | None = Field(default=None, max_length=1000)


class UserLogin(SQLModel):
    email: EmailStr = Field(max_length=255)
    password: str = Field(min_length=1, max_length=128)


class GoogleLogin(SQLModel):
    credential: str = Field(min_length=1)


# Properties the user may change on their own profile, all are optional
class UserUpdateMe(SQLModel):
    full_name: Trimmed | None = Field(default=None, min_length=2, max_length=255)
    department: Trimmed | None = Field(default=None, max_length=255)
    job_title: Trimmed | None = Field(default=None, max_length=255)
    phone: Trimmed | None = Field(default=None, max_length=50)
    location: Trimmed | None = Field(default=None, max_length=255)
    bio: Trimmed | None = Field(default=None, max_length=2000)
    specialties: list[PositiveInt] | None = None


# Account flags only an admin may change
class UserAdminUpdate(SQLModel):
    is_active: bool | None = None
    is_admin: bool | None = None
    is_moderator: bool | None = None


class AuthorPublic(SQLModel):
    id: int
    full_name: str | None = None
    avatar: str | None = None
    job_title: str | None = None


# Properties to return via API, id is always required
class UserPublic(SQLModel):
    id: int
    email: str
    full_name: str | None = None
    department: str | None = None
    job_title: str | None = None
    registration_number: str | None = None
    phone: str | None = None
    location: str | None = None
    bio: str | None = None
    avatar: str | None = None
    is_active: bool
    is_admin: bool
    is_moderator: bool
    created_at: datetime | None = None
    last_login_at: datetime | None = None


class UserActivityCounts(SQLModel):
    prompts: int = 0
    comments: int = 0
    likes: int = 0
    discussions: int = 0
    posts: int = 0


# ---------------------------------------------------------------------------
# Specialties
# ---------------------------------------------------------------------------


class Specialty(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(unique=True, index=True, max_length=255)
    description: str | None = Field(default=None, max_length=1000)
    icon: str | None = Field(default=None, max_length=512)
    color: str | None = Field(default=None, max_length=7)


def _check_color(color: str | None) -> str | None:
    if color is None or color == "":
        return None
    if not re.match(HEX_COLOR_PATTERN, color):
        raise ValueError("color must be a hexadecimal code such as #0d47a1")
    return color


class SpecialtyCreate(SQLModel):
    name: Trimmed = Field(min_length=2, max_length=255)
    description: Trimmed | None = Field(default=None, max_length=1000)
    color: str | None = Field(default=None, max_length=7)

    @field_validator("color")
    @classmethod
    def validate_color(cls, v: str | None) -> str | None:
        return _check_color(v)


class SpecialtyUpdate(SQLModel):
    name: Trimmed | None = Field(default=None, min_length=2, max_length=255)
    description: Trimmed | None = Field(default=None, max_length=1000)
    color: str | None = Field(default=None, max_length=7)

    @field_validator("color")
    @classmethod
    def validate_color(cls, v: str | None) -> str | None:
        return _check_color(v)


class SpecialtyPublic(SQLModel):
    id: int
    name: str
    description: str | None = None
    icon: str | None = None
    color: str | None = None


class SpecialtyWithCounts(SpecialtyPublic):
    prompts: int = 0
    users: int = 0


class UserProfile(UserPublic):
    specialties: list[SpecialtyPublic] = []
    counts: UserActivityCounts


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------


class Prompt(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    title: str = Field(max_length=255)
    description: str = Field(max_length=1000)
    content: str
    category: str = Field(index=True, max_length=255)
    tags: list[str] = Field(default_factory=list, sa_type=JSON)
    specialty_id: int | None = Field(
        default=None, foreign_key="specialty.id", ondelete="SET NULL"
    )
    author_id: int = Field(
        foreign_key="user.id", nullable=False, ondelete="CASCADE", index=True
    )
    is_public: bool = True
    is_approved: bool = True
    is_featured: bool = False
    view_count: int = 0
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    updated_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    author: User | None = Relationship()
    specialty: Specialty | None = Relationship()


def _check_tags(tags: list[str] | None) -> list[str] | None:
    if tags is None:
        return None
    cleaned = [tag.strip() for tag in tags]
    for tag in cleaned:
        if not 1 <= len(tag) <= 50:
            raise ValueError("each tag must have between 1 and 50 characters")
    return cleaned


class PromptCreate(SQLModel):
    title: Trimmed = Field(min_length=5, max_length=255)
    description: Trimmed = Field(min_length=10, max_length=1000)
    content: Trimmed = Field(min_length=20)
    category: Trimmed = Field(min_length=2, max_length=255)
    tags: list[str] = Field(default_factory=list)
    specialty_id: int | None = Field(default=None, ge=1)
    is_public: bool = True

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: list[str]) -> list[str]:
        return _check_tags(v) or []


# Properties to receive via API on update, all are optional
class PromptUpdate(SQLModel):
    title: Trimmed | None = Field(default=None, min_length=5, max_length=255)
    description: Trimmed | None = Field(default=None, min_length=10, max_length=1000)
    content: Trimmed | None = Field(default=None, min_length=20)
    category: Trimmed | None = Field(default=None, min_length=2, max_length=255)
    tags: list[str] | None = None
    specialty_id: int | None = Field(default=None, ge=1)
    is_public: bool | None = None

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: list[str] | None) -> list[str] | None:
        return _check_tags(v)


class PromptModeration(SQLModel):
    is_approved: bool | None = None
    is_featured: bool | None = None


class PromptPublic(SQLModel):
    id: int
    title: str
    description: str
    category: str
    tags: list[str] = []
    view_count: int = 0
    is_public: bool
    is_approved: bool
    is_featured: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None
    author: AuthorPublic | None = None
    specialty: SpecialtyPublic | None = None
    likes: int = 0
    comments: int = 0
    isLiked: bool = False


class PromptDetail(PromptPublic):
    content: str


# ---------------------------------------------------------------------------
# Discussions and posts
# ---------------------------------------------------------------------------


class Discussion(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    title: str = Field(max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    category: str = Field(index=True, max_length=255)
    author_id: int = Field(
        foreign_key="user.id", nullable=False, ondelete="CASCADE", index=True
    )
    is_open: bool = True
    is_pinned: bool = False
    is_locked: bool = False
    view_count: int = 0
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    updated_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    author: User | None = Relationship()


class DiscussionCreate(SQLModel):
    title: Trimmed = Field(min_length=5, max_length=255)
    description: Trimmed | None = Field(default=None, min_length=10, max_length=2000)
    category: Trimmed = Field(min_length=2, max_length=255)
    is_open: bool = True


class DiscussionUpdate(SQLModel):
    title: Trimmed | None = Field(default=None, min_length=5, max_length=255)
    description: Trimmed | None = Field(default=None, min_length=10, max_length=2000)
    category: Trimmed | None = Field(default=None, min_length=2, max_length=255)
    is_open: bool | None = None
    is_pinned: bool | None = None
    is_locked: bool | None = None


class Post(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    content: str = Field(max_length=5000)
    discussion_id: int = Field(
        foreign_key="discussion.id", nullable=False, ondelete="CASCADE", index=True
    )
    author_id: int = Field(
        foreign_key="user.id", nullable=False, ondelete="CASCADE", index=True
    )
    is_approved: bool = True
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    updated_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    author: User | None = Relationship()


class PostCreate(SQLModel):
    content: Trimmed = Field(min_length=3, max_length=5000)


class PostUpdate(PostCreate):
    pass


class PostSummary(SQLModel):
    id: int
    content: str
    created_at: datetime | None = None
    author: AuthorPublic | None = None


class PostPublic(SQLModel):
    id: int
    discussion_id: int
    content: str
    is_approved: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None
    author: AuthorPublic | None = None
    likes: int = 0
    comments: int = 0
    isLiked: bool = False


class DiscussionPublic(SQLModel):
    id: int
    title: str
    description: str | None = None
    category: str
    is_open: bool
    is_pinned: bool
    is_locked: bool
    view_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None
    author: AuthorPublic | None = None
    posts: int = 0
    last_post: PostSummary | None = None


# ---------------------------------------------------------------------------
# Comments and likes
# ---------------------------------------------------------------------------


class Comment(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    content: str = Field(max_length=2000)
    author_id: int = Field(
        foreign_key="user.id", nullable=False, ondelete="CASCADE", index=True
    )
    prompt_id: int | None = Field(
        default=None, foreign_key="prompt.id", ondelete="CASCADE", index=True
    )
    post_id: int | None = Field(
        default=None, foreign_key="post.id", ondelete="CASCADE", index=True
    )
    parent_id: int | None = Field(
        default=None, foreign_key="comment.id", ondelete="CASCADE", index=True
    )
    is_approved: bool = True
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    updated_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    author: User | None = Relationship()


class CommentCreate(SQLModel):
    content: Trimmed = Field(min_length=5, max_length=2000)
    parent_id: int | None = Field(default=None, ge=1)


class CommentUpdate(SQLModel):
    content: Trimmed = Field(min_length=5, max_length=2000)


class CommentPublic(SQLModel):
    id: int
    content: str
    parent_id: int | None = None
    is_approved: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None
    author: AuthorPublic | None = None
    likes: int = 0
    isLiked: bool = False
    replies: list["CommentPublic"] = []


class Like(SQLModel, table=True):
    # One row per (user, target); the constraints are what stop double likes.
    __table_args__ = (
        UniqueConstraint("user_id", "prompt_id", name="uq_like_user_prompt"),
        UniqueConstraint("user_id", "comment_id", name="uq_like_user_comment"),
        UniqueConstraint("user_id", "post_id", name="uq_like_user_post"),
    )

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(
        foreign_key="user.id", nullable=False, ondelete="CASCADE", index=True
    )
    prompt_id: int | None = Field(
        default=None, foreign_key="prompt.id", ondelete="CASCADE", index=True
    )
    comment_id: int | None = Field(
        default=None, foreign_key="comment.id", ondelete="CASCADE", index=True
    )
    post_id: int | None = Field(
        default=None, foreign_key="post.id", ondelete="CASCADE", index=True
    )
    created_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


# Generic message
class Message(SQLModel):
    message: str


# Contents of JWT token
class TokenPayload(SQLModel):
    sub: str | None = None


class Pagination(SQLModel):
    page: int
    limit: int
    total: int
    pages: int


class AuthResponse(SQLModel):
    message: str
    user: UserPublic
    token: str


class CurrentUserResponse(SQLModel):
    user: UserPublic


class UserProfileResponse(SQLModel):
    user: UserProfile


class UserUpdateResponse(SQLModel):
    message: str
    user: UserPublic


class UsersPublic(SQLModel):
    users: list[UserPublic]
    pagination: Pagination


class PromptsPublic(SQLModel):
    prompts: list[PromptPublic]
    pagination: Pagination


class PromptList(SQLModel):
    prompts: list[PromptPublic]


class PromptResponse(SQLModel):
    message: str
    prompt: PromptPublic


class LikeToggleResult(SQLModel):
    message: str
    isLiked: bool
    likes: int


class CommentsPublic(SQLModel):
    comments: list[CommentPublic]
    pagination: Pagination


class CommentResponse(SQLModel):
    message: str
    comment: CommentPublic


class DiscussionsPublic(SQLModel):
    discussions: list[DiscussionPublic]
    pagination: Pagination


class DiscussionResponse(SQLModel):
    message: str
    discussion: DiscussionPublic


class PostsPublic(SQLModel):
    posts: list[PostPublic]
    pagination: Pagination


class PostResponse(SQLModel):
    message: str
    post: PostPublic


class SpecialtiesPublic(SQLModel):
    specialties: list[SpecialtyWithCounts]


class SpecialtyResponse(SQLModel):
    specialty: SpecialtyWithCounts


class SpecialtyMutationResponse(SQLModel):
    message: str
    specialty: SpecialtyPublic


class PromptDetailResponse(SQLModel):
    prompt: PromptDetail


class DiscussionDetailResponse(SQLModel):
    discussion: DiscussionPublic


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


class StatsTotals(SQLModel):
    prompts: int
    activeUsers: int


class CategoryCount(SpecialtyPublic):
    totalPrompts: int = 0


class Activity(SQLModel):
    type: str
    action: str | None = None
    id: int
    title: str | None = None
    content: str | None = None
    created_at: datetime | None = None
    user: AuthorPublic | None = None
    prompt_id: int | None = None
    post_id: int | None = None
    discussion_id: int | None = None


class DashboardStats(SQLModel):
    totals: StatsTotals
    topPrompts: list[PromptPublic]
    categories: list[CategoryCount]
    recentActivities: list[Activity]


class PromptStats(SQLModel):
    total: int
    public: int
    approved: int
    featured: int


class CategoriesStats(SQLModel):
    categories: list[CategoryCount]


class Health(SQLModel):
    status: str
    timestamp: datetime
    uptime: float
