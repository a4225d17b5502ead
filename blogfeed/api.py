"""HTTP feed backed by a relational store, with likes and page caching in Redis."""

from __future__ import annotations

import argparse
import json
import re
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any

import redis
from flask import Flask, Response, request
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .cache import DEFAULT_REDIS_URL, init_redis, likes_key
from .database import AuthorRecord, PostRecord, init_database

ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)
USER_HEADER = "X-USER-ID"

_RFC3339 = re.compile(r"(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:\d{2})\Z")
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def _parse_rfc3339(value: Any) -> datetime:
    match = _RFC3339.match(value) if isinstance(value, str) else None
    if match is None:
        raise ValueError(f"invalid RFC 3339 time: {value!r}")
    base, fraction, zone = match.groups()
    moment = datetime.fromisoformat(base + ("+00:00" if zone == "Z" else zone))
    return moment.replace(microsecond=int(((fraction or "") + "000000")[:6]))


def _format_time(moment: datetime, fractional: bool = True) -> str:
    text = moment.replace(microsecond=0, tzinfo=None).isoformat()
    if fractional and moment.microsecond:
        text += f".{moment.microsecond:06d}".rstrip("0")
    offset = moment.utcoffset() or timedelta(0)
    if not offset:
        return text + "Z"
    minutes = abs(offset) // timedelta(minutes=1)
    sign = "+" if offset > timedelta(0) else "-"
    return f"{text}{sign}{minutes // 60:02d}:{minutes % 60:02d}"


def parse_time(value: str) -> datetime:
    """Parse an RFC 3339 time; anything unparseable yields the zero time."""
    try:
        return _parse_rfc3339(value)
    except ValueError:
        return ZERO_TIME


@dataclass
class Author:
    id: str = ""
    nickname: str = ""
    avatar: str = ""


@dataclass
class Post:
    id: str = ""
    author: Author = field(default_factory=Author)
    body: str = ""
    created_at: datetime = ZERO_TIME
    like_count: int = 0
    is_liked: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-ready form of the post."""
        return {
            "id": self.id,
            "author": vars(self.author).copy(),
            "body": self.body,
            "created_at": _format_time(self.created_at),
            "like_count": self.like_count,
            "is_liked": self.is_liked,
        }


def _field(data: dict, key: str, kind: type, default: Any) -> Any:
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise ValueError(f"{key} has the wrong type")
    return value


def post_from_json(data: Any) -> Post:
    """Build a post from decoded JSON, raising ValueError on malformed input."""
    if not isinstance(data, dict):
        raise ValueError("post must be a JSON object")
    author = _field(data, "author", dict, {})
    created = data.get("created_at")
    return Post(
        id=_field(data, "id", str, ""),
        author=Author(*(_field(author, key, str, "") for key in ("id", "nickname", "avatar"))),
        body=_field(data, "body", str, ""),
        created_at=ZERO_TIME if created is None else _parse_rfc3339(created),
        like_count=_field(data, "like_count", int, 0),
        is_liked=_field(data, "is_liked", bool, False),
    )


def apply_is_liked(posts: list[Post], user_id: str, cache: Any) -> None:
    """Mark each post as liked or not by ``user_id``; failed lookups leave it alone."""
    if not user_id:
        return
    for post in posts:
        try:
            post.is_liked = bool(cache.sismember(likes_key(post.id), user_id))
        except redis.exceptions.RedisError:
            pass


def _scan_int(value: str, default: int) -> int:
    match = _LEADING_INT.match(value)
    return int(match.group(1)) if match else default


def _encode(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False) + "\n"


def _error(message: str, status: int) -> Response:
    return Response(message + "\n", status=status, content_type="text/plain; charset=utf-8")


def create_app(session_factory: sessionmaker[Session], cache: Any) -> Flask:
    """Build the web application over a session factory and a Redis-like cache."""
    app = Flask(__name__)

    def get_posts() -> Response:
        offset = _scan_int(request.args.get("offset", ""), 0)
        limit = _scan_int(request.args.get("limit", ""), 10)
        user_id = request.headers.get(USER_HEADER, "")
        cache_key = f"posts:page:{offset}:{limit}"

        try:
            cached = cache.get(cache_key)
            if cached is not None:
                cached_posts = [post_from_json(item) for item in json.loads(cached)]
                apply_is_liked(cached_posts, user_id, cache)
                return Response(_encode([p.to_dict() for p in cached_posts]), mimetype="application/json")
        except (redis.exceptions.RedisError, ValueError, TypeError):
            pass

        try:
            with session_factory() as session:
                records = session.scalars(select(PostRecord)).all()
        except SQLAlchemyError:
            return _error("failed to load posts", 500)

        # The page is cached before it is filled, so the cached copy is always empty.
        try:
            cache.set(cache_key, _encode([]), ex=10)
        except redis.exceptions.RedisError:
            pass

        errors = ""
        result = []
        for record in records:
            key = likes_key(record.id)
            try:
                count = int(cache.scard(key))
            except redis.exceptions.RedisError:
                errors += "failed to load posts\n"
                count = 0
            is_liked = False
            if user_id:
                try:
                    is_liked = bool(cache.sismember(key, user_id))
                except redis.exceptions.RedisError:
                    pass
            author = record.author
            result.append(
                Post(
                    id=record.id,
                    author=Author(author.id, author.nickname, author.avatar),
                    body=record.body,
                    created_at=parse_time(record.created_at),
                    like_count=count,
                    is_liked=is_liked,
                ).to_dict()
            )
        if errors:
            return Response(errors + _encode(result), status=500, content_type="text/plain; charset=utf-8")
        return Response(_encode(result), mimetype="application/json")

    def create_post() -> Response:
        try:
            incoming = post_from_json(json.loads(request.get_data()))
        except ValueError:
            return _error("failed to decode post body", 500)

        with session_factory() as session:
            try:
                author = session.get(AuthorRecord, incoming.author.id)
            except SQLAlchemyError:
                return _error("failed to query author", 500)
            if author is None:
                author = AuthorRecord(**vars(incoming.author))
                session.add(author)
                try:
                    session.commit()
                except SQLAlchemyError:
                    return _error("failed to create author", 500)
            record = PostRecord(
                id=str(uuid.uuid4()),
                author=author,
                body=incoming.body,
                created_at=_format_time(incoming.created_at, fractional=False),
            )
            session.add(record)
            try:
                session.commit()
            except SQLAlchemyError:
                return _error("failed to create post", 500)

        created = replace(incoming, id=record.id, like_count=0, is_liked=False)
        return Response(_encode(created.to_dict()), status=201, mimetype="application/json")

    def like_post() -> Response:
        app.logger.info("LIKE handler: %s %s", request.method, request.path)
        parts = request.path.split("/")
        if len(parts) < 3:
            return _error("invalid URL", 400)
        user_id = request.headers.get(USER_HEADER, "")
        if not user_id:
            return _error("Invalid user ID", 400)
        try:
            cache.sadd(likes_key(parts[2]), user_id)
        except redis.exceptions.RedisError:
            return _error("failed to add liked post", 500)
        return Response("", status=200)

    methods = ["GET", "POST", "PUT", "PATCH", "DELETE"]

    @app.route("/posts", methods=methods)
    def posts() -> Response:
        if request.method == "GET":
            return get_posts()
        if request.method == "POST":
            return create_post()
        return _error("method not allowed", 405)

    @app.route("/posts/<path:rest>", methods=methods)
    def post_item(rest: str) -> Response:
        if request.method == "POST" and request.path.endswith("/like"):
            return like_post()
        return _error("404 page not found", 404)

    return app


def main(argv: list[str] | None = None) -> None:
    """Start the HTTP feed server."""
    parser = argparse.ArgumentParser(description="Serve the blog feed over HTTP.")
    parser.add_argument("--database-url", default="postgresql://localhost/blog")
    parser.add_argument("--redis-url", default=DEFAULT_REDIS_URL)
    parser.add_argument("--port", type=int, default=8080)
    args = parser.parse_args(argv)
    app = create_app(init_database(args.database_url), init_redis(args.redis_url))
    app.run(host="0.0.0.0", port=args.port)