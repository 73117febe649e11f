from datetime import timedelta

from fastapi.testclient import TestClient
from sqlmodel import Session, select

from forum.models import Discussion, Post, get_datetime_utc

DISCUSSION_BODY = {
    "title": "Uso de IA em relatórios",
    "description": "Como vocês revisam os textos gerados?",
    "category": "Boas Práticas",
}


def make_discussion(session: Session, author, **fields: object) -> Discussion:
    data: dict = {"title": "Tópico de discussão", "category": "Geral"}
    data.update(fields)
    discussion = Discussion(author_id=author.id, **data)
    session.add(discussion)
    session.commit()
    session.refresh(discussion)
    return discussion


def test_create_discussion(client: TestClient, user, auth_headers) -> None:
    r = client.post("/api/discussions", json=DISCUSSION_BODY, headers=auth_headers(user))
    assert r.status_code == 201
    discussion = r.json()["discussion"]
    assert discussion["title"] == DISCUSSION_BODY["title"]
    assert discussion["is_open"] is True
    assert discussion["posts"] == 0
    assert discussion["last_post"] is None
    assert discussion["author"]["id"] == user.id


def test_create_discussion_validation(client: TestClient, user, auth_headers) -> None:
    r = client.post(
        "/api/discussions",
        json={"title": "oi", "category": "Geral"},
        headers=auth_headers(user),
    )
    assert r.status_code == 400
    assert r.json()["details"][0]["field"] == "title"


def test_list_pinned_first(client: TestClient, session: Session, user) -> None:
    now = get_datetime_utc()
    old_pinned = make_discussion(
        session, user, is_pinned=True, updated_at=now - timedelta(days=3)
    )
    recent = make_discussion(session, user, updated_at=now)
    older = make_discussion(session, user, updated_at=now - timedelta(days=1))

    data = client.get("/api/discussions").json()
    assert [d["id"] for d in data["discussions"]] == [old_pinned.id, recent.id, older.id]
    assert data["pagination"]["total"] == 3

    pinned = client.get("/api/discussions", params={"pinned": "true"}).json()
    assert [d["id"] for d in pinned["discussions"]] == [old_pinned.id]


def test_list_search_and_sorts(client: TestClient, session: Session, user) -> None:
    busy = make_discussion(session, user, title="Modelos de depoimento")
    viewed = make_discussion(session, user, title="Ferramentas", view_count=40)
    for i in range(2):
        session.add(Post(content=f"Resposta {i}", discussion_id=busy.id, author_id=user.id))
    session.commit()

    found = client.get("/api/discussions", params={"search": "depoimento"}).json()
    by_views = client.get("/api/discussions", params={"sort": "views"}).json()
    by_posts = client.get("/api/discussions", params={"sort": "posts"}).json()

    assert [d["id"] for d in found["discussions"]] == [busy.id]
    assert by_views["discussions"][0]["id"] == viewed.id
    assert by_posts["discussions"][0]["id"] == busy.id
    assert by_posts["discussions"][0]["posts"] == 2
    assert by_posts["discussions"][0]["last_post"]["content"] == "Resposta 1"


def test_read_discussion_counts_views(client: TestClient, session: Session, user) -> None:
    discussion = make_discussion(session, user)
    client.get(f"/api/discussions/{discussion.id}")
    r = client.get(f"/api/discussions/{discussion.id}")
    assert r.status_code == 200
    assert r.json()["discussion"]["view_count"] == 2
    assert client.get("/api/discussions/999").status_code == 404


def test_author_cannot_pin(
    client: TestClient, session: Session, user, moderator, auth_headers
) -> None:
    discussion = make_discussion(session, user)

    r = client.put(
        f"/api/discussions/{discussion.id}",
        json={"title": "Título atualizado", "is_pinned": True},
        headers=auth_headers(user),
    )
    assert r.status_code == 200
    assert r.json()["discussion"]["title"] == "Título atualizado"
    assert r.json()["discussion"]["is_pinned"] is False

    r = client.put(
        f"/api/discussions/{discussion.id}",
        json={"is_pinned": True, "is_locked": True},
        headers=auth_headers(moderator),
    )
    assert r.json()["discussion"]["is_pinned"] is True
    assert r.json()["discussion"]["is_locked"] is True


def test_stranger_cannot_edit_or_delete(
    client: TestClient, session: Session, user, other_user, auth_headers
) -> None:
    discussion = make_discussion(session, user)
    headers = auth_headers(other_user)
    assert (
        client.put(
            f"/api/discussions/{discussion.id}", json={"is_open": False}, headers=headers
        ).status_code
        == 403
    )
    assert client.delete(f"/api/discussions/{discussion.id}", headers=headers).status_code == 403


def test_delete_discussion_removes_posts(
    client: TestClient, session: Session, user, moderator, auth_headers
) -> None:
    discussion = make_discussion(session, user)
    session.add(Post(content="Uma resposta", discussion_id=discussion.id, author_id=user.id))
    session.commit()

    r = client.delete(f"/api/discussions/{discussion.id}", headers=auth_headers(moderator))
    assert r.status_code == 200
    session.expire_all()
    assert session.exec(select(Post)).all() == []
