import json
import logging

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, select

from forum import crud
from forum.core.config import settings
from forum.models import User, UserRegister

logger = logging.getLogger(__name__)


def _json_serializer(value: object) -> str:
    # keep accents readable so tag search matches what users type
    return json.dumps(value, ensure_ascii=False)


def _build_engine(url: str) -> Engine:
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True, json_serializer=_json_serializer)

    kwargs: dict = {
        "connect_args": {"check_same_thread": False},
        "json_serializer": _json_serializer,
    }
    if url in ("sqlite://", "sqlite:///:memory:"):
        # every connection must see the same in-memory database
        kwargs["poolclass"] = StaticPool
    sqlite_engine = create_engine(url, **kwargs)

    @event.listens_for(sqlite_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):  # type: ignore[no-untyped-def]
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return sqlite_engine


engine = _build_engine(settings.SQLALCHEMY_DATABASE_URI)


def init_db(session: Session) -> None:
    SQLModel.metadata.create_all(session.get_bind())

    user = session.exec(
        select(User).where(User.email == str(settings.FIRST_SUPERUSER).lower())
    ).first()
    if not user:
        logger.info("Creating first superuser %s", settings.FIRST_SUPERUSER)
        user = crud.create_user(
            session=session,
            user_create=UserRegister(
                email=settings.FIRST_SUPERUSER,
                password=settings.FIRST_SUPERUSER_PASSWORD,
                full_name="Administrador",
            ),
        )
        user.is_admin = True
        session.add(user)
        session.commit()
