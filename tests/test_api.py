import json
import uuid
from datetime import datetime, timedelta, timezone

import pytest
import redis

from blogfeed.api import (
    Author,
    Post,
    apply_is_liked,
    create_app,
    parse_time,
    post_from_json,
)
from blogfeed.cache import likes_key
from blogfeed.database import AuthorRecord, PostRecord, init_database

ZERO_TEXT = "0001-01-01T00:00:00Z"


class FakeCache:
    def __init__(self):
        self.values = {}
        self.expiry = {}
        self.sets = {}

    def get(self, name):
        return self.values.get(name)

    def set(self, name, value, ex=None):
        if isinstance(value, bytes):
            value = value.decode()
        self.values[name] = value
        self.expiry[name] = ex
        return True

    def scard(self, name):
        return len(self.sets.get(name, set()))

    def sismember(self, name, value):
        return int(value in self.sets.get(name, set()))

    def sadd(self, name, *values):
        members = self.sets.setdefault(name, set())
        before = len(members)
        members.update(values)
        return len(members) - before


class FailingCache(FakeCache):
    def scard(self, name):
        raise redis.exceptions.ConnectionError("down")

    def sismember(self, name, value):
        raise redis.exceptions.ConnectionError("down")

    def sadd(self, name, *values):
        raise redis.exceptions.ConnectionError("down")


@pytest.fixture
def session_factory(tmp_path):
    return init_database(f"sqlite:///{tmp_path / 'blog.db'}")


@pytest.fixture
def cache():
    return FakeCache()


@pytest.fixture
def client(session_factory, cache):
    return create_app(session_factory, cache).test_client()


def _seed(session_factory, post_id, author_id, body, created_at="2025-04-01T10:00:00Z"):
    with session_factory() as session:
        author = session.get(AuthorRecord, author_id)
        if author is None:
            author = AuthorRecord(
                id=author_id, nickname=author_id.title(), avatar="https://example.com/avatar1.png"
            )
        session.add(PostRecord(id=post_id, author=author, body=body, created_at=created_at))
        session.commit()


def test_parse_time_utc():
    assert parse_time("2025-04-01T10:00:00Z") == datetime(2025, 4, 1, 10, 0, tzinfo=timezone.utc)


def test_parse_time_offset_and_fraction():
    moment = parse_time("2025-04-01T11:00:00.25+02:00")
    assert moment.utcoffset() == timedelta(hours=2)
    assert moment.microsecond == 250000
    assert moment.hour == 11


def test_parse_time_invalid_gives_zero_time():
    moment = parse_time("yesterday")
    assert moment.year == 1
    assert Post(created_at=moment).to_dict()["created_at"] == ZERO_TEXT


def test_default_post_to_dict():
    assert Post().to_dict() == {
        "id": "",
        "author": {"id": "", "nickname": "", "avatar": ""},
        "body": "",
        "created_at": ZERO_TEXT,
        "like_count": 0,
        "is_liked": False,
    }


def test_post_json_round_trip():
    post = Post(
        id="1",
        author=Author(id="user1", nickname="Alice", avatar="https://example.com/avatar1.png"),
        body="Первый пост gRPC!",
        created_at=parse_time("2025-04-01T10:00:00.5+03:00"),
        like_count=5,
        is_liked=True,
    )
    data = json.loads(json.dumps(post.to_dict()))
    assert post_from_json(data) == post
    assert data["created_at"] == "2025-04-01T10:00:00.5+03:00"


def test_post_from_json_rejects_bad_time():
    with pytest.raises(ValueError):
        post_from_json({"created_at": "not a time"})


def test_post_from_json_rejects_non_object():
    with pytest.raises(ValueError):
        post_from_json(["id"])


def test_apply_is_liked_marks_members(cache):
    cache.sets[likes_key("a")] = {"bob"}
    posts = [Post(id="a"), Post(id="b", is_liked=True)]
    apply_is_liked(posts, "bob", cache)
    assert [p.is_liked for p in posts] == [True, False]


def test_apply_is_liked_without_user_changes_nothing(cache):
    cache.sets[likes_key("a")] = {"bob"}
    posts = [Post(id="a")]
    apply_is_liked(posts, "", cache)
    assert posts[0].is_liked is False


def test_apply_is_liked_keeps_flag_on_cache_error():
    posts = [Post(id="a", is_liked=True)]
    apply_is_liked(posts, "bob", FailingCache())
    assert posts[0].is_liked is True


def test_create_post(client, session_factory):
    payload = {
        "author": {"id": "alice", "nickname": "Alice", "avatar": "https://example.com/a.png"},
        "body": "hello",
        "created_at": "2025-04-01T10:00:00Z",
    }
    response = client.post("/posts", json=payload)
    assert response.status_code == 201
    data = response.get_json()
    assert data["author"] == payload["author"]
    assert data["body"] == "hello"
    assert data["created_at"] == "2025-04-01T10:00:00Z"
    assert data["like_count"] == 0
    assert data["is_liked"] is False
    assert str(uuid.UUID(data["id"])) == data["id"]
    with session_factory() as session:
        record = session.get(PostRecord, data["id"])
        assert record.author_id == "alice"
        assert record.body == "hello"
        assert record.created_at == "2025-04-01T10:00:00Z"


def test_create_post_stores_time_without_fraction(client, session_factory):
    payload = {"author": {"id": "alice"}, "body": "x", "created_at": "2025-04-01T10:00:00.5+02:00"}
    data = client.post("/posts", json=payload).get_json()
    assert data["created_at"] == "2025-04-01T10:00:00.5+02:00"
    with session_factory() as session:
        assert session.get(PostRecord, data["id"]).created_at == "2025-04-01T10:00:00+02:00"


def test_create_post_reuses_existing_author(client, session_factory):
    first = {"author": {"id": "alice", "nickname": "Alice"}, "body": "one"}
    second = {"author": {"id": "alice", "nickname": "Renamed"}, "body": "two"}
    client.post("/posts", json=first)
    response = client.post("/posts", json=second)
    assert response.get_json()["author"]["nickname"] == "Renamed"
    with session_factory() as session:
        authors = session.query(AuthorRecord).all()
        assert [(a.id, a.nickname) for a in authors] == [("alice", "Alice")]
        assert session.query(PostRecord).count() == 2


def test_create_post_bad_body(client):
    response = client.post("/posts", data="{not json", content_type="application/json")
    assert response.status_code == 500
    assert response.get_data(as_text=True) == "failed to decode post body\n"


def test_get_posts_counts_likes(client, session_factory, cache):
    _seed(session_factory, "p1", "alice", "first")
    _seed(session_factory, "p2", "bob", "second")
    cache.sets[likes_key("p1")] = {"bob", "carol"}
    response = client.get("/posts", headers={"X-USER-ID": "bob"})
    assert response.status_code == 200
    data = sorted(response.get_json(), key=lambda item: item["id"])
    assert [d["id"] for d in data] == ["p1", "p2"]
    assert data[0]["like_count"] == 2
    assert data[0]["is_liked"] is True
    assert data[1]["like_count"] == 0
    assert data[1]["is_liked"] is False
    assert data[0]["author"]["id"] == "alice"
    assert data[0]["created_at"] == "2025-04-01T10:00:00Z"


def test_get_posts_caches_empty_page(client, session_factory, cache):
    _seed(session_factory, "p1", "alice", "first")
    assert len(client.get("/posts").get_json()) == 1
    key = "posts:page:0:10"
    assert json.loads(cache.values[key]) == []
    assert cache.expiry[key] == 10
    assert client.get("/posts").get_json() == []


def test_get_posts_query_parsing(client, cache):
    response = client.get("/posts?offset=5abc&limit=x")
    assert response.status_code == 200
    assert response.get_json() == []
    assert list(cache.values) == ["posts:page:5:10"]


def test_get_posts_serves_cached_page(client, cache):
    cached = Post(
        id="p9",
        author=Author(id="dave", nickname="Dave", avatar="https://example.com/d.png"),
        body="cached",
        created_at=parse_time("2025-04-01T11:00:00Z"),
        like_count=4,
    )
    cache.values["posts:page:0:10"] = json.dumps([cached.to_dict()])
    cache.sets[likes_key("p9")] = {"erin"}
    data = client.get("/posts", headers={"X-USER-ID": "erin"}).get_json()
    assert len(data) == 1
    assert post_from_json(data[0]) == Post(
        id="p9",
        author=cached.author,
        body="cached",
        created_at=cached.created_at,
        like_count=4,
        is_liked=True,
    )


def test_get_posts_ignores_unreadable_cache(client, session_factory, cache):
    _seed(session_factory, "p1", "alice", "first")
    cache.values["posts:page:0:10"] = "garbage"
    data = client.get("/posts").get_json()
    assert [d["id"] for d in data] == ["p1"]


def test_get_posts_like_count_failure(session_factory):
    _seed(session_factory, "p1", "alice", "first")
    client = create_app(session_factory, FailingCache()).test_client()
    response = client.get("/posts")
    assert response.status_code == 500
    assert response.get_data(as_text=True).startswith("failed to load posts\n")


def test_like_post(client, cache):
    response = client.post("/posts/7/like", headers={"X-USER-ID": "bob"})
    assert response.status_code == 200
    assert cache.sets[likes_key("7")] == {"bob"}


def test_like_post_is_idempotent(client, cache):
    for _ in range(2):
        client.post("/posts/7/like", headers={"X-USER-ID": "bob"})
    assert cache.scard(likes_key("7")) == 1


def test_like_post_requires_user(client, cache):
    response = client.post("/posts/7/like")
    assert response.status_code == 400
    assert response.get_data(as_text=True) == "Invalid user ID\n"
    assert cache.sets == {}


def test_like_post_cache_failure(session_factory):
    client = create_app(session_factory, FailingCache()).test_client()
    response = client.post("/posts/7/like", headers={"X-USER-ID": "bob"})
    assert response.status_code == 500
    assert response.get_data(as_text=True) == "failed to add liked post\n"


def test_unknown_post_route_is_not_found(client):
    assert client.get("/posts/7").status_code == 404
    assert client.get("/posts/7/like").status_code == 404


def test_posts_rejects_other_methods(client):
    response = client.put("/posts")
    assert response.status_code == 405
    assert response.get_data(as_text=True) == "method not allowed\n"