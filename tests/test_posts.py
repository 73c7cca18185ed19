import uuid
from datetime import datetime
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from postboard import services
from postboard.api import limiter
from postboard.errors import InternalError
from postboard.models.post import Post, Tag


def _post_body(**overrides):
    body = {
        "title": "Intro to pandas",
        "content": "DataFrames are tables.",
        "category": "tutorial",
        "tags": ["python"],
    }
    body.update(overrides)
    return body


def _create(client, headers, **overrides):
    resp = client.post("/posts", json=_post_body(**overrides), headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_list_posts_empty_with_and_without_token(client, make_user, auth_header):
    user = make_user()
    assert client.get("/posts").json() == []
    assert client.get("/posts", headers=auth_header(user)).json() == []
    resp = client.get("/posts", headers={"Authorization": "Bearer garbage"})
    assert resp.status_code == 200
    assert resp.json() == []


def test_list_posts_with_one_and_many(client, make_user, auth_header):
    headers = auth_header(make_user())
    _create(client, headers, title="first")
    assert [p["title"] for p in client.get("/posts").json()] == ["first"]

    _create(client, headers, title="second")
    _create(client, headers, title="third")
    resp = client.get("/posts")
    assert resp.status_code == 200
    assert {p["title"] for p in resp.json()} == {"first", "second", "third"}


def test_list_posts_newest_first(client, db, make_user, auth_header):
    headers = auth_header(make_user())
    for title, day in [("middle", 2), ("oldest", 1), ("newest", 3)]:
        post = _create(client, headers, title=title)
        db.get(Post, post["id"]).created_at = datetime(2024, 1, day)
    db.commit()

    resp = client.get("/posts")
    assert [p["title"] for p in resp.json()] == ["newest", "middle", "oldest"]


def test_create_requires_token(client):
    resp = client.post("/posts", json=_post_body())
    assert resp.status_code == 401
    assert resp.json() == {"message": "Unauthorized"}
    assert client.get("/posts").json() == []


@pytest.mark.parametrize(
    "header",
    [
        "Bearer garbage",
        "Bearer a.b.c",
        "Basic dXNlcjpwYXNz",
        "Bearer",
        "garbage",
    ],
)
def test_create_rejects_malformed_token(client, header):
    resp = client.post("/posts", json=_post_body(), headers={"Authorization": header})
    assert resp.status_code == 401


def test_create_rejects_token_for_missing_user(client):
    from postboard.auth import create_token

    headers = {"Authorization": f"Bearer {create_token(str(uuid.uuid4()))}"}
    resp = client.post("/posts", json=_post_body(), headers=headers)
    assert resp.status_code == 401


def test_unauthenticated_write_is_rejected_before_validation(client):
    resp = client.post("/posts", json={"title": ""})
    assert resp.status_code == 401


def test_unauthenticated_write_with_unparseable_body(client, make_user, auth_header):
    garbled = {"content": b"{not json", "headers": {"Content-Type": "application/json"}}
    post = _create(client, auth_header(make_user()))

    resp = client.post("/posts", **garbled)
    assert resp.status_code == 401
    assert resp.json() == {"message": "Unauthorized"}
    assert client.put(f"/posts/{post['id']}", **garbled).status_code == 401


def test_authenticated_write_with_unparseable_body(client, make_user, auth_header):
    headers = {"Content-Type": "application/json", **auth_header(make_user())}

    resp = client.post("/posts", content=b"{not json", headers=headers)
    assert resp.status_code == 400
    assert resp.json() == {"message": "Invalid request body"}
    assert client.get("/posts").json() == []


def test_author_comes_from_token_not_body(client, make_user, auth_header):
    author = make_user(name="Author")
    other = make_user(name="Impostor")

    post = _create(
        client,
        auth_header(author),
        author={"id": other.id, "name": "Impostor"},
        authorId=other.id,
        author_id=other.id,
    )
    assert post["author"]["id"] == author.id
    assert post["author"]["name"] == "Author"
    assert "password" not in str(post["author"]).lower()


def test_created_post_shape(client, make_user, auth_header):
    post = _create(client, auth_header(make_user()))
    assert set(post) == {
        "id",
        "title",
        "content",
        "excerpt",
        "category",
        "tags",
        "author",
        "published",
        "views",
        "likes",
        "comments_count",
        "createdAt",
        "updatedAt",
    }
    assert post["published"] is True
    assert post["views"] == 0
    assert post["likes"] == 0
    assert post["comments_count"] == 0
    assert post["excerpt"] == "DataFrames are tables."


def test_long_content_gets_truncated_excerpt(client, make_user, auth_header):
    post = _create(client, auth_header(make_user()), content="x" * 500)
    assert post["excerpt"] == "x" * 200 + "..."

    post = _create(client, auth_header(make_user()), content="x" * 500, excerpt="custom")
    assert post["excerpt"] == "custom"


def test_invalid_category_is_rejected(client, make_user, auth_header):
    resp = client.post("/posts", json=_post_body(category="gossip"), headers=auth_header(make_user()))
    assert resp.status_code == 400
    assert resp.json() == {"message": "Invalid request body"}


def test_duplicate_tags_collapse_and_are_reused(client, db, make_user, auth_header):
    headers = auth_header(make_user())

    first = _create(client, headers, tags=["a", "a", "b"])
    assert sorted(t["name"] for t in first["tags"]) == ["a", "b"]

    second = _create(client, headers, tags=["a", " ", " c "])
    assert sorted(t["name"] for t in second["tags"]) == ["a", "c"]

    tag_a = {t["name"]: t["id"] for t in first["tags"]}["a"]
    assert {t["name"]: t["id"] for t in second["tags"]}["a"] == tag_a
    assert db.query(Tag).count() == 3
    assert [t["name"] for t in client.get("/tags").json()] == ["a", "b", "c"]


def test_get_post_counts_views(client, make_user, auth_header):
    post = _create(client, auth_header(make_user()))

    assert client.get(f"/posts/{post['id']}").json()["views"] == 1
    resp = client.get(f"/posts/{post['id']}")
    assert resp.status_code == 200
    assert resp.json()["views"] == 2


def test_get_unknown_post(client):
    resp = client.get(f"/posts/{uuid.uuid4()}")
    assert resp.status_code == 404
    assert resp.json() == {"message": "Post not found"}


def test_update_by_author(client, make_user, auth_header):
    headers = auth_header(make_user())
    post = _create(client, headers, tags=["a"])

    resp = client.put(
        f"/posts/{post['id']}",
        json={"title": "Renamed", "category": "code", "tags": ["b", "c"]},
        headers=headers,
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["title"] == "Renamed"
    assert data["category"] == "code"
    assert data["content"] == post["content"]
    assert sorted(t["name"] for t in data["tags"]) == ["b", "c"]


def test_update_content_regenerates_generated_excerpt(client, make_user, auth_header):
    headers = auth_header(make_user())
    post = _create(client, headers, content="old words")

    resp = client.put(f"/posts/{post['id']}", json={"content": "y" * 300}, headers=headers)
    assert resp.json()["excerpt"] == "y" * 200 + "..."


def test_update_content_keeps_hand_written_excerpt(client, make_user, auth_header):
    headers = auth_header(make_user())
    post = _create(client, headers, content="old words", excerpt="A short teaser")

    resp = client.put(f"/posts/{post['id']}", json={"content": "new words"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["content"] == "new words"
    assert resp.json()["excerpt"] == "A short teaser"

    resp = client.put(
        f"/posts/{post['id']}", json={"content": "newer", "excerpt": "Other teaser"}, headers=headers
    )
    assert resp.json()["excerpt"] == "Other teaser"


def test_update_forbidden_for_other_user_but_allowed_for_admin(client, make_user, auth_header):
    post = _create(client, auth_header(make_user()))
    teacher = make_user(role="teacher")
    admin = make_user(role="admin")

    resp = client.put(f"/posts/{post['id']}", json={"title": "x"}, headers=auth_header(teacher))
    assert resp.status_code == 403
    assert resp.json() == {"message": "Forbidden"}

    resp = client.put(f"/posts/{post['id']}", json={"title": "x"}, headers=auth_header(admin))
    assert resp.status_code == 200
    assert resp.json()["title"] == "x"
    assert resp.json()["author"]["id"] == post["author"]["id"]


def test_update_requires_token(client, make_user, auth_header):
    post = _create(client, auth_header(make_user()))
    resp = client.put(f"/posts/{post['id']}", json={"title": "x"})
    assert resp.status_code == 401


def test_delete(client, make_user, auth_header):
    author_headers = auth_header(make_user())
    post = _create(client, author_headers, tags=["a"])

    assert client.delete(f"/posts/{post['id']}").status_code == 401
    assert client.delete(f"/posts/{post['id']}", headers=auth_header(make_user())).status_code == 403

    resp = client.delete(f"/posts/{post['id']}", headers=author_headers)
    assert resp.status_code == 204
    assert client.get(f"/posts/{post['id']}").status_code == 404
    assert client.delete(f"/posts/{post['id']}", headers=author_headers).status_code == 404
    assert [t["name"] for t in client.get("/tags").json()] == ["a"]


def test_like(client, make_user, auth_header):
    post = _create(client, auth_header(make_user()))
    reader = auth_header(make_user())

    assert client.post(f"/posts/{post['id']}/like").status_code == 401
    assert client.post(f"/posts/{post['id']}/like", headers=reader).json() == {"likes": 1}
    assert client.post(f"/posts/{post['id']}/like", headers=reader).json() == {"likes": 2}
    assert client.post(f"/posts/{uuid.uuid4()}/like", headers=reader).status_code == 404


def test_unsupported_method_on_collection(client):
    resp = client.delete("/posts")
    assert resp.status_code == 405
    assert resp.json() == {"message": "Method not allowed"}


def test_unexpected_errors_become_internal_error(client, monkeypatch):
    def boom(db):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(services, "list_posts", boom)
    resp = client.get("/posts")
    assert resp.status_code == 500
    assert resp.json() == {"message": "Internal server error"}
    assert "disk" not in resp.text


def test_database_errors_roll_back_and_hide_details():
    session = MagicMock()
    session.query.side_effect = OperationalError("SELECT", {}, Exception("locked"))

    with pytest.raises(InternalError):
        services.list_tags(session)
    session.rollback.assert_called_once()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_metrics_exposes_request_counter(client):
    client.get("/health")
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "api_requests_total" in resp.text


@pytest.fixture
def rate_limited(monkeypatch):
    monkeypatch.setattr(limiter, "enabled", True)
    limiter.reset()
    yield limiter
    limiter.reset()


def test_login_rate_limit_uses_message_body(client, rate_limited):
    body = {"email": "x@example.com", "password": "pw", "action": "signup"}
    for _ in range(5):
        assert client.post("/auth", json=body).status_code == 400

    resp = client.post("/auth", json=body)
    assert resp.status_code == 429
    assert set(resp.json()) == {"message"}
    assert resp.json()["message"].startswith("Rate limit exceeded")
