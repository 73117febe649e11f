from datetime import timedelta

from fastapi.testclient import TestClient
from sqlmodel import Session

from forum.api.routes.stats import recent_activities
from forum.models import Comment, Discussion, Specialty, get_datetime_utc


def test_prompt_stats(client: TestClient, user, make_prompt) -> None:
    make_prompt(user)
    make_prompt(user, is_public=False)
    make_prompt(user, is_approved=False, is_featured=True)
    r = client.get("/api/stats/prompts")
    assert r.status_code == 200
    assert r.json() == {"total": 3, "public": 2, "approved": 2, "featured": 1}


def test_category_stats(client: TestClient, session: Session, user, make_prompt) -> None:
    specialty = Specialty(name="Perícia", color="#EF4444")
    empty = Specialty(name="Cartório")
    session.add_all([specialty, empty])
    session.commit()
    make_prompt(user, specialty_id=specialty.id)

    categories = client.get("/api/stats/categories").json()["categories"]
    assert [(c["name"], c["totalPrompts"]) for c in categories] == [
        ("Cartório", 0),
        ("Perícia", 1),
    ]
    assert categories[1]["color"] == "#EF4444"


def test_dashboard(
    client: TestClient, session: Session, user, make_user, make_prompt, auth_headers
) -> None:
    make_user(is_active=False)
    make_prompt(user, view_count=5)
    top = make_prompt(user, view_count=90)
    make_prompt(user, view_count=30)
    make_prompt(user, view_count=1)
    make_prompt(user, view_count=500, is_public=False)

    r = client.get("/api/stats/dashboard", headers=auth_headers(user))
    assert r.status_code == 200
    data = r.json()
    assert data["totals"] == {"prompts": 5, "activeUsers": 1}
    assert [p["view_count"] for p in data["topPrompts"]] == [90, 30, 5]
    assert data["topPrompts"][0]["id"] == top.id
    assert "isLiked" in data["topPrompts"][0]
    assert len(data["recentActivities"]) <= 20

    assert client.get("/api/stats/dashboard").status_code == 200


def test_recent_activities_newest_first(
    session: Session, user, make_prompt
) -> None:
    now = get_datetime_utc()
    edited = make_prompt(
        user,
        title="Prompt editado",
        created_at=now - timedelta(days=3),
        updated_at=now - timedelta(hours=1),
    )
    make_prompt(user, title="Prompt antigo", created_at=now - timedelta(days=5),
                updated_at=now - timedelta(days=5))
    discussion = Discussion(
        title="Tópico novo", category="Geral", author_id=user.id,
        created_at=now - timedelta(days=2), updated_at=now - timedelta(days=2),
    )
    session.add(discussion)
    session.add(
        Comment(content="Comentário recente", author_id=user.id, prompt_id=edited.id,
                created_at=now - timedelta(minutes=5))
    )
    session.commit()

    activities = recent_activities(session)
    stamps = [a.created_at for a in activities]
    assert stamps == sorted(stamps, reverse=True)

    kinds = [(a.type, a.action, a.title or a.content) for a in activities]
    assert ("prompt", "updated", "Prompt editado") in kinds
    assert ("prompt", "created", "Prompt editado") in kinds
    assert ("prompt", "updated", "Prompt antigo") not in kinds
    assert ("discussion", "created", "Tópico novo") in kinds
    assert ("comment", None, "Comentário recente") in kinds
    assert any(a.type == "user" and a.id == user.id for a in activities)

    assert len(recent_activities(session, limit=2)) == 2
