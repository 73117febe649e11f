import os
import tempfile
from collections.abc import Callable, Generator

# Settings are read at import time, so the test environment goes in first.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret-key-with-at-least-32-bytes!!"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "local"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="forum-uploads-")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import Session, SQLModel  # noqa: E402

from forum import crud  # noqa: E402
from forum.api.deps import get_db  # noqa: E402
from forum.core.db import engine  # noqa: E402
from forum.core.security import create_access_token  # noqa: E402
from forum.main import app  # noqa: E402
from forum.models import Prompt, User, UserRegister  # noqa: E402

PASSWORD = "abcdef"


@pytest.fixture
def session() -> Generator[Session, None, None]:
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        app.dependency_overrides[get_db] = lambda: session
        yield session
    app.dependency_overrides.clear()
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def client(session: Session) -> TestClient:
    return TestClient(app)


@pytest.fixture
def auth_headers() -> Callable[[User], dict[str, str]]:
    def _headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _headers


@pytest.fixture
def make_user(session: Session) -> Callable[..., User]:
    counter = iter(range(1, 10_000))

    def _make_user(
        *,
        email: str | None = None,
        full_name: str = "agente teste",
        is_admin: bool = False,
        is_moderator: bool = False,
        is_active: bool = True,
    ) -> User:
        n = next(counter)
        user = crud.create_user(
            session=session,
            user_create=UserRegister(
                email=email or f"user{n}@pc.sc.gov.br",
                password=PASSWORD,
                full_name=full_name,
            ),
        )
        user.is_admin = is_admin
        user.is_moderator = is_moderator
        user.is_active = is_active
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def user(make_user: Callable[..., User]) -> User:
    return make_user()


@pytest.fixture
def other_user(make_user: Callable[..., User]) -> User:
    return make_user()


@pytest.fixture
def moderator(make_user: Callable[..., User]) -> User:
    return make_user(is_moderator=True)


@pytest.fixture
def admin(make_user: Callable[..., User]) -> User:
    return make_user(is_admin=True)


@pytest.fixture
def make_prompt(session: Session) -> Callable[..., Prompt]:
    def _make_prompt(author: User, **fields: object) -> Prompt:
        data: dict = {
            "title": "Relatório de ocorrência",
            "description": "Modelo para relatórios de ocorrência policial",
            "content": "Escreva um relatório objetivo sobre a ocorrência descrita.",
            "category": "Documentação",
            "tags": ["relatório"],
        }
        data.update(fields)
        prompt = Prompt(author_id=author.id, **data)
        session.add(prompt)
        session.commit()
        session.refresh(prompt)
        return prompt

    return _make_prompt
