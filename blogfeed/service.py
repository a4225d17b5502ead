"""In-memory blog feed service: listing, creating, editing and liking posts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

DEFAULT_AVATAR = "https://example.com/avatar1.png"


class PostNotFoundError(LookupError):
    """Raised when no post has the requested id."""

    def __init__(self, message: str = "post not found") -> None:
        super().__init__(message)


class NotAuthorError(PermissionError):
    """Raised when a user changes a post they did not write."""

    def __init__(self, message: str = "not the author") -> None:
        super().__init__(message)


@dataclass
class Author:
    id: str
    nickname: str
    avatar: str


@dataclass
class Post:
    id: str
    author: Author
    body: str
    created_at: str
    like_count: int = 0
    is_like: bool = False


def default_posts() -> list[Post]:
    """Return a fresh copy of the feed the service starts with."""
    return [
        Post(
            id="1",
            author=Author(id="user1", nickname="Alice", avatar="https://example.com/avatar1.png"),
            body="Первый пост gRPC!",
            created_at="2025-04-01T10:00:00Z",
            like_count=5,
        ),
        Post(
            id="2",
            author=Author(id="user2", nickname="Bob", avatar="https://example.com/avatar2.png"),
            body="Второй пост gRPC!",
            created_at="2025-04-01T11:00:00Z",
            like_count=3,
        ),
    ]


def _now_rfc3339() -> str:
    stamp = datetime.now().astimezone().isoformat(timespec="seconds")
    return stamp[:-6] + "Z" if stamp.endswith("+00:00") else stamp


@dataclass
class BlogService:
    """Holds the feed in memory and applies the blog operations to it."""

    posts: list[Post] = field(default_factory=default_posts)

    def __init__(self, posts: list[Post] | None = None) -> None:
        self.posts = default_posts() if posts is None else posts

    def _find(self, post_id: str) -> Post:
        for post in self.posts:
            if post.id == post_id:
                return post
        raise PostNotFoundError()

    def get_posts(self, offset: int = 0, limit: int = 0, user_id: str = "") -> list[Post]:
        """Return a page of posts, marking those written by ``user_id`` as liked."""
        total = len(self.posts)
        if offset < 0 or offset >= total:
            offset = 0
        if limit <= 0 or limit > total:
            limit = total
        selected = self.posts[offset:offset + limit]
        for post in selected:
            post.is_like = post.author.id == user_id
        return selected

    def create_post(self, user_id: str, body: str) -> Post:
        """Create a post by ``user_id`` and put it at the top of the feed."""
        post = Post(
            id=str(len(self.posts) + 1),
            author=Author(id=user_id, nickname=user_id, avatar=DEFAULT_AVATAR),
            body=body,
            created_at=_now_rfc3339(),
        )
        self.posts.insert(0, post)
        return post

    def delete_post(self, post_id: str, user_id: str) -> bool:
        """Delete a post if ``user_id`` wrote it; report whether it was deleted."""
        for post in self.posts:
            if post.id == post_id:
                if post.author.id != user_id:
                    return False
                self.posts.remove(post)
                return True
        return False

    def edit_post(self, post_id: str, user_id: str, body: str) -> Post:
        """Replace the body of a post written by ``user_id``."""
        post = self._find(post_id)
        if post.author.id != user_id:
            raise NotAuthorError()
        post.body = body
        return post

    def like_post(self, post_id: str) -> Post:
        """Like a post once; further likes change nothing."""
        post = self._find(post_id)
        if not post.is_like:
            post.like_count += 1
            post.is_like = True
        return post

    def unlike_post(self, post_id: str) -> Post:
        """Withdraw a like if the post is currently liked."""
        post = self._find(post_id)
        if post.is_like and post.like_count > 0:
            post.like_count -= 1
            post.is_like = False
        return post