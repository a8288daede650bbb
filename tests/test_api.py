import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from club_service.application.services import CommentCountUpdater, CommunityService, JourneyService
from club_service.config import settings
from club_service.dependencies import get_account_repository, get_community_service, get_journey_service
from club_service.main import app
from tests.conftest import (
    InMemoryAuditLog,
    InMemoryCommentRepository,
    InMemoryJourneyRepository,
    InMemoryPostRepository,
    make_token,
)


@pytest.fixture
def posts():
    return InMemoryPostRepository()


@pytest.fixture
def client(accounts, runner, posts):
    community = CommunityService(
        posts,
        InMemoryCommentRepository(),
        InMemoryAuditLog(),
        CommentCountUpdater(runner),
    )
    journeys = JourneyService(runner, InMemoryJourneyRepository())

    app.dependency_overrides[get_account_repository] = lambda: accounts
    app.dependency_overrides[get_community_service] = lambda: community
    app.dependency_overrides[get_journey_service] = lambda: journeys
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth(uid):
    return {"Authorization": f"Bearer {make_token(uid)}"}


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_posts_require_token(client):
    response = client.get("/api/v1/clubs/club-1/posts")

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


def test_posts_require_membership(client):
    response = client.get("/api/v1/clubs/club-1/posts", headers=auth("outsider"))

    assert response.status_code == 403
    assert response.json() == {"error": "Forbidden"}


def test_unknown_club_is_404(client):
    response = client.get("/api/v1/clubs/club-404/posts", headers=auth("member-1"))

    assert response.status_code == 404
    assert response.json() == {"error": "Club not found"}


def test_create_and_page_posts(client):
    for index in range(3):
        response = client.post(
            "/api/v1/clubs/club-1/posts",
            json={"content": f"post {index}", "intent_tag": "reflecting"},
            headers=auth("member-1"),
        )
        assert response.status_code == 201

    first = client.get("/api/v1/clubs/club-1/posts", params={"page_size": 2}, headers=auth("member-1"))
    body = first.json()

    assert first.status_code == 200
    assert len(body["items"]) == 2
    assert body["has_more"] is True
    assert body["next_cursor"]

    rest = client.get(
        "/api/v1/clubs/club-1/posts",
        params={"page_size": 2, "cursor": body["next_cursor"]},
        headers=auth("member-1"),
    ).json()

    assert len(rest["items"]) == 1
    assert rest["has_more"] is False
    ids = {item["id"] for item in body["items"] + rest["items"]}
    assert len(ids) == 3


def test_club_auth_header_is_accepted(client):
    response = client.get("/api/v1/clubs/club-1/posts", headers={"X-Club-Auth": make_token("member-1")})

    assert response.status_code == 200


def test_create_post_with_client_id(client):
    post_id = str(ObjectId())

    response = client.post(
        "/api/v1/clubs/club-1/posts",
        json={"content": "hello", "id": post_id},
        headers=auth("member-1"),
    )

    assert response.status_code == 201
    assert response.json()["id"] == post_id
    assert response.json()["intent_tag"] == "open_for_discussion"


def test_retried_create_is_idempotent_and_foreign_id_conflicts(client):
    post_id = str(ObjectId())
    body = {"content": "hello", "id": post_id}

    first = client.post("/api/v1/clubs/club-1/posts", json=body, headers=auth("member-1"))
    retry = client.post("/api/v1/clubs/club-1/posts", json=body, headers=auth("member-1"))
    taken = client.post("/api/v1/clubs/club-1/posts", json=body, headers=auth("host-1"))

    assert first.status_code == 201
    assert retry.status_code == 201
    assert retry.json()["id"] == post_id
    assert taken.status_code == 409
    assert taken.json() == {"error": "Post already exists"}

    feed = client.get("/api/v1/clubs/club-1/posts", headers=auth("member-1")).json()
    assert [item["id"] for item in feed["items"]] == [post_id]


def test_create_post_rejects_invalid_client_id(client):
    response = client.post(
        "/api/v1/clubs/club-1/posts",
        json={"content": "hello", "id": "not-an-object-id"},
        headers=auth("member-1"),
    )

    assert response.status_code == 422


def test_bad_cursor_is_400(client):
    response = client.get(
        "/api/v1/clubs/club-1/posts",
        params={"cursor": "bm90LWEtY3Vyc29y"},
        headers=auth("member-1"),
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid pagination cursor"}


def test_host_hides_member_post(client, posts):
    post_id = client.post(
        "/api/v1/clubs/club-1/posts", json={"content": "spam"}, headers=auth("member-1")
    ).json()["id"]

    denied = client.patch(
        f"/api/v1/clubs/club-1/posts/{post_id}", json={"content": "edited"}, headers=auth("host-2")
    )
    hidden = client.delete(
        f"/api/v1/clubs/club-1/posts/{post_id}",
        params={"mode": "hide", "reason": "spam"},
        headers=auth("host-1"),
    )

    assert denied.status_code == 403
    assert hidden.status_code == 200
    assert hidden.json()["message"] == "Post hidden successfully"
    assert posts.posts[post_id].hidden is True

    feed = client.get("/api/v1/clubs/club-1/posts", headers=auth("member-1")).json()
    assert feed["items"] == []


def test_comments_roundtrip(client, store):
    post_id = client.post(
        "/api/v1/clubs/club-1/posts", json={"content": "question"}, headers=auth("member-1")
    ).json()["id"]
    store.setdefault("posts", {})[post_id] = {"club_id": "club-1", "comments_count": 0}

    created = client.post(
        f"/api/v1/clubs/club-1/posts/{post_id}/comments", json={"content": "answer"}, headers=auth("host-1")
    )
    listed = client.get(f"/api/v1/clubs/club-1/posts/{post_id}/comments", headers=auth("member-1"))

    assert created.status_code == 201
    assert [item["content"] for item in listed.json()["items"]] == ["answer"]
    assert store["posts"][post_id]["comments_count"] == 1

    comment_id = created.json()["id"]
    deleted = client.delete(
        f"/api/v1/clubs/club-1/posts/{post_id}/comments/{comment_id}", headers=auth("host-1")
    )

    assert deleted.json()["message"] == "Comment deleted successfully"
    assert store["posts"][post_id]["comments_count"] == 0


def test_host_creates_journeys_with_unique_slugs(client):
    first = client.post(
        "/api/v1/clubs/club-1/journeys", json={"title": "  Crème Brûlée  "}, headers=auth("host-1")
    )
    second = client.post(
        "/api/v1/clubs/club-1/journeys",
        json={"title": "Creme brulee", "thumbnail_url": "https://cdn.example.com/a.png"},
        headers=auth("host-1"),
    )

    assert first.status_code == 201
    assert first.json()["title"] == "Crème Brûlée"
    assert first.json()["slug"] == "creme-brulee"
    assert second.json()["slug"] == "creme-brulee-2"
    assert second.json()["order"] == 1
    assert second.json()["thumbnail_url"] == "https://cdn.example.com/a.png"


@pytest.mark.parametrize("uid, message", [
    ("member-1", "Forbidden"),
    ("host-2", "Forbidden"),
])
def test_only_the_enabled_host_creates_journeys(client, uid, message):
    response = client.post("/api/v1/clubs/club-1/journeys", json={"title": "Intro"}, headers=auth(uid))

    assert response.status_code == 403
    assert response.json() == {"error": message}


def test_disabled_host_is_told_so(client):
    response = client.post("/api/v1/clubs/club-2/journeys", json={"title": "Intro"}, headers=auth("host-2"))

    assert response.status_code == 403
    assert response.json() == {"error": "Your host account is disabled. Contact support."}


def test_blank_journey_title_is_rejected(client):
    response = client.post("/api/v1/clubs/club-1/journeys", json={"title": "   "}, headers=auth("host-1"))

    assert response.status_code == 422


def test_admin_me_requires_whitelist(client, monkeypatch):
    token = make_token("admin-1", admin=True)

    monkeypatch.setattr(settings, "ADMIN_EMAIL_WHITELIST", "")
    assert client.get("/api/v1/admin/me", headers={"Authorization": f"Bearer {token}"}).status_code == 403

    monkeypatch.setattr(settings, "ADMIN_EMAIL_WHITELIST", "admin@example.com")
    client.cookies.set("session", token)
    response = client.get("/api/v1/admin/me")

    assert response.status_code == 200
    assert response.json() == {"uid": "admin-1", "email": "Admin@Example.com", "host": False, "admin": True}


def test_host_updates_reorders_and_deletes_journeys(client):
    created = [
        client.post("/api/v1/clubs/club-1/journeys", json={"title": title}, headers=auth("host-1")).json()
        for title in ("Intro", "Practice")
    ]

    updated = client.patch(
        f"/api/v1/clubs/club-1/journeys/{created[0]['id']}",
        json={"title": "Welcome", "estimated_minutes": 15},
        headers=auth("host-1"),
    )
    reordered = client.patch(
        "/api/v1/clubs/club-1/journeys/reorder",
        json={"journey_ids": [created[1]["id"], created[0]["id"]]},
        headers=auth("host-1"),
    )
    deleted = client.delete(f"/api/v1/clubs/club-1/journeys/{created[1]['id']}", headers=auth("host-1"))
    missing = client.delete(f"/api/v1/clubs/club-1/journeys/{created[1]['id']}", headers=auth("host-1"))

    assert updated.status_code == 200
    assert updated.json()["title"] == "Welcome"
    assert updated.json()["slug"] == "intro"
    assert updated.json()["estimated_minutes"] == 15
    assert reordered.json()["message"] == "Journeys reordered successfully"
    assert deleted.json()["message"] == "Journey deleted successfully"
    assert missing.status_code == 404
    assert missing.json() == {"error": "Journey not found"}


@pytest.mark.parametrize("path, method, body", [
    ("/api/v1/clubs/club-1/journeys/j1", "patch", {"title": "x"}),
    ("/api/v1/clubs/club-1/journeys/j1", "delete", None),
    ("/api/v1/clubs/club-1/journeys/reorder", "patch", {"journey_ids": ["j1"]}),
])
def test_journey_changes_require_the_host(client, path, method, body):
    kwargs = {"headers": auth("member-1")}
    if body is not None:
        kwargs["json"] = body

    response = getattr(client, method)(path, **kwargs)

    assert response.status_code == 403


@pytest.mark.parametrize("path, body", [
    ("/api/v1/clubs/club-1/journeys/j1", {}),
    ("/api/v1/clubs/club-1/journeys/j1", {"title": "  "}),
    ("/api/v1/clubs/club-1/journeys/reorder", {"journey_ids": []}),
    ("/api/v1/clubs/club-1/journeys/reorder", {"journey_ids": ["a", "a"]}),
])
def test_invalid_journey_changes_are_rejected(client, path, body):
    response = client.patch(path, json=body, headers=auth("host-1"))

    assert response.status_code == 422
