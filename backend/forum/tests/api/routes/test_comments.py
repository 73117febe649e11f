from fastapi.testclient import TestClient
from sqlmodel import Session, select

from forum.models import Comment, Discussion, Like, Post


def add_comment(client: TestClient, prompt_id: int, headers: dict, **body: object):
    payload = {"content": "Comentário de teste útil"}
    payload.update(body)
    return client.post(f"/api/prompts/{prompt_id}/comments", json=payload, headers=headers)


def test_comment_thread_ordering(
    client: TestClient, user, other_user, make_prompt, auth_headers
) -> None:
    prompt = make_prompt(user)
    first = add_comment(client, prompt.id, auth_headers(user), content="Primeiro comentário").json()
    second = add_comment(client, prompt.id, auth_headers(other_user), content="Segundo comentário")
    assert second.status_code == 201
    root_id = first["comment"]["id"]

    reply_a = add_comment(
        client, prompt.id, auth_headers(other_user), content="Primeira resposta", parent_id=root_id
    ).json()["comment"]
    reply_b = add_comment(
        client, prompt.id, auth_headers(user), content="Segunda resposta", parent_id=reply_a["id"]
    ).json()["comment"]
    # a reply to a reply is attached to the root
    assert reply_b["parent_id"] == root_id

    data = client.get(f"/api/prompts/{prompt.id}/comments").json()
    assert data["pagination"]["total"] == 2
    assert data["pagination"]["limit"] == 20
    roots = data["comments"]
    assert [c["content"] for c in roots] == ["Segundo comentário", "Primeiro comentário"]
    assert [r["content"] for r in roots[1]["replies"]] == [
        "Primeira resposta",
        "Segunda resposta",
    ]
    assert roots[0]["replies"] == []


def test_comment_requires_auth(client: TestClient, user, make_prompt) -> None:
    prompt = make_prompt(user)
    r = add_comment(client, prompt.id, {})
    assert r.status_code == 401


def test_comment_on_missing_prompt(client: TestClient, user, auth_headers) -> None:
    assert add_comment(client, 999, auth_headers(user)).status_code == 404


def test_comment_parent_from_other_prompt_rejected(
    client: TestClient, user, make_prompt, auth_headers
) -> None:
    a = make_prompt(user)
    b = make_prompt(user)
    parent = add_comment(client, a.id, auth_headers(user)).json()["comment"]
    r = add_comment(client, b.id, auth_headers(user), parent_id=parent["id"])
    assert r.status_code == 400


def test_comment_too_short(client: TestClient, user, make_prompt, auth_headers) -> None:
    prompt = make_prompt(user)
    r = add_comment(client, prompt.id, auth_headers(user), content="oi")
    assert r.status_code == 400


def test_owner_edit_resets_approval_moderator_keeps_it(
    client: TestClient, session: Session, user, moderator, make_prompt, auth_headers
) -> None:
    prompt = make_prompt(user)
    comment_id = add_comment(client, prompt.id, auth_headers(user)).json()["comment"]["id"]

    r = client.put(
        f"/api/comments/{comment_id}",
        json={"content": "Texto corrigido pelo autor"},
        headers=auth_headers(user),
    )
    assert r.status_code == 200
    assert r.json()["comment"]["is_approved"] is False

    comment = session.get(Comment, comment_id)
    comment.is_approved = True
    session.add(comment)
    session.commit()

    r = client.put(
        f"/api/comments/{comment_id}",
        json={"content": "Texto ajustado pela moderação"},
        headers=auth_headers(moderator),
    )
    assert r.status_code == 200
    assert r.json()["comment"]["is_approved"] is True


def test_non_owner_cannot_delete_comment(
    client: TestClient, session: Session, user, other_user, make_prompt, auth_headers
) -> None:
    prompt = make_prompt(user)
    comment_id = add_comment(client, prompt.id, auth_headers(user)).json()["comment"]["id"]

    r = client.delete(f"/api/comments/{comment_id}", headers=auth_headers(other_user))
    assert r.status_code == 403
    session.expire_all()
    assert session.get(Comment, comment_id) is not None


def test_moderator_deletes_comment_and_replies(
    client: TestClient, session: Session, user, other_user, moderator, make_prompt, auth_headers
) -> None:
    prompt = make_prompt(user)
    root_id = add_comment(client, prompt.id, auth_headers(user)).json()["comment"]["id"]
    add_comment(client, prompt.id, auth_headers(other_user), parent_id=root_id)
    client.post(f"/api/comments/{root_id}/like", headers=auth_headers(other_user))

    r = client.delete(f"/api/comments/{root_id}", headers=auth_headers(moderator))
    assert r.status_code == 200
    session.expire_all()
    assert session.exec(select(Comment)).all() == []
    assert session.exec(select(Like)).all() == []


def test_comment_like_toggle_and_is_liked(
    client: TestClient, user, other_user, make_prompt, auth_headers
) -> None:
    prompt = make_prompt(user)
    comment_id = add_comment(client, prompt.id, auth_headers(user)).json()["comment"]["id"]

    liked = client.post(f"/api/comments/{comment_id}/like", headers=auth_headers(other_user))
    assert liked.json()["isLiked"] is True
    assert liked.json()["likes"] == 1

    listing = client.get(
        f"/api/prompts/{prompt.id}/comments", headers=auth_headers(other_user)
    ).json()
    assert listing["comments"][0]["isLiked"] is True
    assert listing["comments"][0]["likes"] == 1

    unliked = client.post(f"/api/comments/{comment_id}/like", headers=auth_headers(other_user))
    assert unliked.json() == {"message": "Like removed", "isLiked": False, "likes": 0}


def test_post_comments(
    client: TestClient, session: Session, user, other_user, auth_headers
) -> None:
    discussion = Discussion(title="Uso de IA", category="Geral", author_id=user.id)
    session.add(discussion)
    session.commit()
    post = Post(content="Primeira postagem", discussion_id=discussion.id, author_id=user.id)
    session.add(post)
    session.commit()

    r = client.post(
        f"/api/posts/{post.id}/comments",
        json={"content": "Concordo com a postagem"},
        headers=auth_headers(other_user),
    )
    assert r.status_code == 201

    data = client.get(f"/api/posts/{post.id}/comments").json()
    assert [c["content"] for c in data["comments"]] == ["Concordo com a postagem"]
    assert client.get("/api/posts/999/comments").status_code == 404
