import logging
from collections.abc import Iterable
from typing import Any

from sqlalchemy import delete, func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from forum.core.federated import FederatedIdentity
from forum.core.security import get_password_hash, verify_password
from forum.models import (
    Like,
    Specialty,
    User,
    UserRegister,
    UserUpdateMe,
    get_datetime_utc,
)
from forum.text_utils import (
    normalize_email,
    normalize_job_title,
    normalize_name,
    normalize_org,
)

logger = logging.getLogger(__name__)


def create_user(*, session: Session, user_create: UserRegister) -> User:
    db_obj = User(
        email=normalize_email(str(user_create.email)),
        hashed_password=get_password_hash(user_create.password),
        full_name=normalize_name(user_create.full_name),
        department=normalize_org(user_create.department),
        job_title=normalize_job_title(user_create.job_title),
        registration_number=user_create.registration_number or None,
        phone=user_create.phone,
        location=user_create.location,
        bio=user_create.bio,
    )
    session.add(db_obj)
    session.commit()
    session.refresh(db_obj)
    return db_obj


def update_user_me(*, session: Session, db_user: User, user_in: UserUpdateMe) -> User:
    user_data = user_in.model_dump(exclude_unset=True, exclude={"specialties"})
    # an explicit null leaves the stored value alone
    user_data = {key: value for key, value in user_data.items() if value is not None}
    if "full_name" in user_data:
        user_data["full_name"] = normalize_name(user_data["full_name"])
    if "department" in user_data:
        user_data["department"] = normalize_org(user_data["department"])
    if "job_title" in user_data:
        user_data["job_title"] = normalize_job_title(user_data["job_title"])
    db_user.sqlmodel_update(user_data)

    if user_in.specialties is not None:
        specialty_ids = set(user_in.specialties)
        specialties = list(
            session.exec(select(Specialty).where(Specialty.id.in_(specialty_ids))).all()  # type: ignore[union-attr]
        )
        if len(specialties) != len(specialty_ids):
            raise ValueError("Unknown specialty id")
        db_user.specialties = specialties

    session.add(db_user)
    session.commit()
    session.refresh(db_user)
    return db_user


def get_user_by_email(*, session: Session, email: str) -> User | None:
    statement = select(User).where(User.email == normalize_email(email))
    session_user = session.exec(statement).first()
    return session_user


def find_registration_conflict(
    *, session: Session, email: str, registration_number: str | None
) -> User | None:
    conditions = [User.email == normalize_email(email)]
    if registration_number:
        conditions.append(User.registration_number == registration_number)
    return session.exec(select(User).where(or_(*conditions))).first()


# Dummy hash to use for timing attack prevention when user is not found
# This is an Argon2 hash of a random password, used to ensure constant-time comparison
DUMMY_HASH = "$argon2id$v=19$m=65536,t=3,p=4$MjQyZWE1MzBjYjJlZTI0Yw$YTU4NGM5ZTZmYjE2NzZlZjY0ZWY3ZGRkY2U2OWFjNjk"


def authenticate(*, session: Session, email: str, password: str) -> User | None:
    """Return the user when the password matches, whatever its active flag."""
    db_user = get_user_by_email(session=session, email=email)
    if not db_user or not db_user.hashed_password:
        # Prevent timing attacks by running password verification even when user doesn't exist
        # This ensures the response time is similar whether or not the email exists
        verify_password(password, DUMMY_HASH)
        return None
    verified, updated_password_hash = verify_password(password, db_user.hashed_password)
    if not verified:
        return None
    if updated_password_hash:
        db_user.hashed_password = updated_password_hash
        session.add(db_user)
        session.commit()
        session.refresh(db_user)
    return db_user


def record_login(*, session: Session, db_user: User) -> User:
    db_user.last_login_at = get_datetime_utc()
    session.add(db_user)
    session.commit()
    session.refresh(db_user)
    return db_user


def get_or_create_federated_user(
    *,
    session: Session,
    identity: FederatedIdentity,
    profile: dict[str, Any] | None = None,
) -> tuple[User, bool]:
    """Resolve a verified external identity to a local user.

    Lookup order is subject, then email. Returns (user, created).
    """
    user = session.exec(select(User).where(User.google_sub == identity.subject)).first()
    if user:
        return user, False

    user = get_user_by_email(session=session, email=identity.email)
    if user:
        if not user.google_sub:
            user.google_sub = identity.subject
            if not user.avatar and identity.picture:
                user.avatar = identity.picture
            session.add(user)
            session.commit()
            session.refresh(user)
        return user, False

    profile = profile or {}
    user = User(
        email=normalize_email(identity.email),
        google_sub=identity.subject,
        full_name=normalize_name(profile.get("full_name") or identity.name),
        department=normalize_org(profile.get("department")),
        job_title=normalize_job_title(profile.get("job_title")),
        registration_number=profile.get("registration_number") or None,
        phone=profile.get("phone"),
        location=profile.get("location"),
        avatar=identity.picture,
    )
    session.add(user)
    try:
        session.commit()
    except IntegrityError:
        # A concurrent first login created the row; use theirs.
        session.rollback()
        existing = session.exec(
            select(User).where(
                or_(
                    User.google_sub == identity.subject,
                    User.email == normalize_email(identity.email),
                )
            )
        ).first()
        if existing is None:
            raise
        return existing, False
    session.refresh(user)
    logger.info("Created user %s from federated login", user.email)
    return user, True


# ---------------------------------------------------------------------------
# Likes and counters
# ---------------------------------------------------------------------------

LIKE_TARGETS = {
    "prompt": Like.prompt_id,
    "comment": Like.comment_id,
    "post": Like.post_id,
}


class LikeTargetNotFound(LookupError):
    def __init__(self, target: str, target_id: int):
        super().__init__(f"{target} {target_id} not found")
        self.target = target
        self.target_id = target_id


def toggle_like(*, session: Session, user_id: int, target: str, target_id: int) -> bool:
    """Flip the like state of (user, target) and return the new state.

    The unique constraint on (user, target) is the only guard against double
    likes: a racing insert that hits it is reported as "liked". An insert
    that fails because the target was deleted raises LikeTargetNotFound.
    """
    column = LIKE_TARGETS[target]
    result = session.execute(
        delete(Like).where(Like.user_id == user_id, column == target_id)  # type: ignore[arg-type]
    )
    if result.rowcount:
        session.commit()
        return False

    session.add(Like(user_id=user_id, **{column.key: target_id}))
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        existing = session.exec(
            select(Like.id).where(Like.user_id == user_id, column == target_id)
        ).first()
        if existing is None:
            raise LikeTargetNotFound(target, target_id)
        logger.info(
            "Concurrent like on %s %s by user %s already recorded",
            target,
            target_id,
            user_id,
        )
    return True


def count_likes(*, session: Session, target: str, target_id: int) -> int:
    column = LIKE_TARGETS[target]
    return session.exec(
        select(func.count()).select_from(Like).where(column == target_id)
    ).one()


def count_grouped(session: Session, column: Any, ids: Iterable[int]) -> dict[int, int]:
    """Row counts per value of `column`, restricted to `ids`."""
    ids = list(ids)
    if not ids:
        return {}
    rows = session.exec(
        select(column, func.count()).where(column.in_(ids)).group_by(column)
    ).all()
    return {key: total for key, total in rows}


def liked_ids(
    session: Session, user_id: int | None, target: str, ids: Iterable[int]
) -> set[int]:
    ids = list(ids)
    if user_id is None or not ids:
        return set()
    column = LIKE_TARGETS[target]
    rows = session.exec(
        select(column).where(Like.user_id == user_id, column.in_(ids))
    ).all()
    return set(rows)


def increment_view_count(*, session: Session, db_obj: Any) -> Any:
    # single UPDATE so concurrent readers never lose an increment
    model = type(db_obj)
    session.execute(
        update(model)
        .where(model.id == db_obj.id)
        .values(view_count=model.view_count + 1)
    )
    session.commit()
    session.refresh(db_obj)
    return db_obj
