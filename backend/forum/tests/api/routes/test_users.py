from pathlib import Path
from unittest.mock import patch

from fastapi.testclient import TestClient
from sqlmodel import Session

from forum.core.config import settings
from forum.models import Comment, Discussion, Like, Specialty


def test_read_own_profile(client: TestClient, user, auth_headers) -> None:
    r = client.get("/api/users/profile", headers=auth_headers(user))
    assert r.status_code == 200
    profile = r.json()["user"]
    assert profile["email"] == user.email
    assert profile["specialties"] == []
    assert profile["counts"] == {
        "prompts": 0,
        "comments": 0,
        "likes": 0,
        "discussions": 0,
        "posts": 0,
    }
    assert client.get("/api/users/profile").status_code == 401


def test_update_profile_normalizes_and_links_specialties(
    client: TestClient, session: Session, user, auth_headers
) -> None:
    a = Specialty(name="Perícia")
    b = Specialty(name="Cartório")
    session.add_all([a, b])
    session.commit()

    r = client.put(
        "/api/users/profile",
        json={
            "full_name": "ANA PAULA DE SOUZA",
            "department": "DELEGACIA DE HOMICIDIOS - DIC",
            "bio": "  Investigadora  ",
            "specialties": [a.id, b.id],
        },
        headers=auth_headers(user),
    )
    assert r.status_code == 200
    updated = r.json()["user"]
    assert updated["full_name"] == "Ana Paula de Souza"
    assert updated["department"] == "Delegacia de Homicidios"
    assert updated["bio"] == "Investigadora"

    profile = client.get("/api/users/profile", headers=auth_headers(user)).json()["user"]
    assert {s["id"] for s in profile["specialties"]} == {a.id, b.id}

    client.put("/api/users/profile", json={"specialties": [b.id]}, headers=auth_headers(user))
    profile = client.get("/api/users/profile", headers=auth_headers(user)).json()["user"]
    assert [s["id"] for s in profile["specialties"]] == [b.id]


def test_update_profile_unknown_specialty(
    client: TestClient, session: Session, user, auth_headers
) -> None:
    r = client.put(
        "/api/users/profile",
        json={"full_name": "Outro Nome", "specialties": [999]},
        headers=auth_headers(user),
    )
    assert r.status_code == 400
    assert r.json() == {"error": "Unknown specialty id"}
    session.refresh(user)
    assert user.full_name != "Outro Nome"


def test_upload_avatar(client: TestClient, user, auth_headers) -> None:
    r = client.post(
        "/api/users/profile/avatar",
        files={"avatar": ("me.jpg", b"jpeg bytes", "image/jpeg")},
        headers=auth_headers(user),
    )
    assert r.status_code == 200
    avatar = r.json()["user"]["avatar"]
    assert avatar.startswith("/uploads/avatars/") and avatar.endswith(".jpg")
    stored = Path(settings.UPLOAD_DIR, avatar.removeprefix("/uploads/"))
    assert stored.read_bytes() == b"jpeg bytes"

    served = client.get(avatar)
    assert served.status_code == 200
    assert served.content == b"jpeg bytes"


def test_upload_avatar_too_large(
    client: TestClient, session: Session, user, auth_headers
) -> None:
    with patch("forum.api.routes.users.AVATAR_MAX_BYTES", 8):
        r = client.post(
            "/api/users/profile/avatar",
            files={"avatar": ("big.png", b"0123456789", "image/png")},
            headers=auth_headers(user),
        )
    assert r.status_code == 413
    assert r.json() == {"error": "File too large"}
    session.refresh(user)
    assert user.avatar is None
    assert not any(Path(settings.UPLOAD_DIR, "avatars").glob("*.png"))


def test_public_profile_counts(
    client: TestClient, session: Session, user, other_user, make_prompt
) -> None:
    prompt = make_prompt(user)
    make_prompt(user)
    session.add(Comment(content="Ótimo modelo", author_id=user.id, prompt_id=prompt.id))
    session.add(Like(user_id=user.id, prompt_id=prompt.id))
    session.add(Discussion(title="Sugestões", category="Geral", author_id=user.id))
    session.commit()

    r = client.get(f"/api/users/{user.id}")
    assert r.status_code == 200
    assert r.json()["user"]["counts"] == {
        "prompts": 2,
        "comments": 1,
        "likes": 1,
        "discussions": 1,
        "posts": 0,
    }
    assert client.get("/api/users/999").status_code == 404


def test_list_users_admin_only(
    client: TestClient, user, admin, make_user, auth_headers
) -> None:
    make_user(full_name="Carlos Investigador")
    assert client.get("/api/users", headers=auth_headers(user)).status_code == 403

    data = client.get("/api/users", headers=auth_headers(admin)).json()
    assert data["pagination"]["total"] == 3
    assert data["pagination"]["limit"] == 20

    found = client.get(
        "/api/users", params={"search": "Carlos"}, headers=auth_headers(admin)
    ).json()
    assert [u["full_name"] for u in found["users"]] == ["Carlos Investigador"]


def test_admin_updates_flags(
    client: TestClient, session: Session, user, admin, auth_headers
) -> None:
    r = client.patch(
        f"/api/users/{user.id}",
        json={"is_moderator": True},
        headers=auth_headers(admin),
    )
    assert r.status_code == 200
    assert r.json()["user"]["is_moderator"] is True

    r = client.patch(
        f"/api/users/{user.id}", json={"is_active": False}, headers=auth_headers(admin)
    )
    assert r.json()["user"]["is_active"] is False
    assert client.get("/api/auth/me", headers=auth_headers(user)).status_code == 401


def test_admin_cannot_lock_themselves_out(
    client: TestClient, admin, auth_headers
) -> None:
    for body in ({"is_active": False}, {"is_admin": False}):
        r = client.patch(f"/api/users/{admin.id}", json=body, headers=auth_headers(admin))
        assert r.status_code == 400
