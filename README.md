# blogfeed

blogfeed is a small blog feed service. Posts and their authors are stored in
a relational database through SQLAlchemy. Likes are kept in Redis as one set
of user ids per post. Everything is served as JSON over HTTP by a Flask
application.

The package has these modules:

- `blogfeed.api` contains the Flask application (`create_app`) and the
  `blogfeed` command (`main`).
- `blogfeed.database` contains the SQLAlchemy models `AuthorRecord` and
  `PostRecord`, and `init_database(url)`. `init_database` creates any missing
  tables and returns a session factory.
- `blogfeed.cache` contains `init_redis(url)`, which connects to Redis and
  pings it, and `likes_key(post_id)`, which returns the key
  `post:<id>:likes`.
- `blogfeed.service` contains `BlogService`, a separate feed that lives only
  in memory. It does not use the database or Redis.

## Installation

```
pip install .
```

To install the test dependencies and run the tests:

```
pip install ".[test]"
pytest
```

## Running the HTTP server

```
blogfeed --database-url sqlite:///blog.db --redis-url redis://localhost:6379/0 --port 8080
```

The command takes these options:

| Option | Default |
|--------|---------|
| `--database-url` | `postgresql://localhost/blog` |
| `--redis-url` | `redis://localhost:6379/0` |
| `--port` | `8080` |

The server listens on all interfaces. It stops at startup if Redis does not
answer.

The default database URL needs a PostgreSQL driver for SQLAlchemy, such as
`psycopg2`. That driver is not installed with this package. If you do not
install one, pass a URL that SQLAlchemy supports without extra packages, such
as a `sqlite:///` URL.

### Endpoints

| Method | Path               | Result |
|--------|--------------------|--------|
| GET    | `/posts`           | Returns every stored post. |
| POST   | `/posts`           | Creates a post from a JSON body. If the author id is new, the author is created too. Responds `201` with the new post. |
| POST   | `/posts/<id>/like` | Adds the user in the `X-USER-ID` header to the likes of post `<id>`. Responds `400` if the header is missing. |

Other methods on `/posts` get `405`. Any other request under `/posts/` gets
`404`.

#### GET /posts

Each post in the response has this shape:

```json
{
  "id": "5f0c...",
  "author": {"id": "user1", "nickname": "Alice", "avatar": "https://example.com/avatar1.png"},
  "body": "Hello!",
  "created_at": "2025-04-01T10:00:00Z",
  "like_count": 0,
  "is_liked": false
}
```

- `like_count` is the size of the post's like set in Redis.
- `is_liked` tells whether the user in the `X-USER-ID` header is in that set.
  It is `false` when the request has no such header.

The response does not depend on the `offset` and `limit` query parameters.
They only choose the cache key `posts:page:<offset>:<limit>`. The defaults are
`0` and `10`.

The response is cached for 10 seconds. The cached copy is stored before the
list is filled, so it is always an empty list. A repeated request with the
same `offset` and `limit` inside those 10 seconds therefore returns `[]`.

If a like count cannot be read from Redis, the response has status `500`. In
that case the list is still in the body, after one error line for each failed
post.

#### POST /posts

The body is a JSON object with these fields:

- `author` with `id`, `nickname` and `avatar`.
- `body`.
- `created_at`, optional, as an RFC 3339 time.

The new post gets a random UUID as its id. A body that is not valid JSON, or
that has fields of the wrong type, gets status `500` with
`failed to decode post body`.

## Using the application from code

```python
from blogfeed.api import create_app
from blogfeed.cache import init_redis
from blogfeed.database import init_database

session_factory = init_database("sqlite:///blog.db")
cache = init_redis("redis://localhost:6379/0")
app = create_app(session_factory, cache)
app.run(port=8080)
```

`create_app` works with any object that has the Redis methods it calls: `get`,
`set`, `scard`, `sismember` and `sadd`.

`blogfeed.api` also has these helpers:

- `parse_time(value)` parses an RFC 3339 time. It returns
  `0001-01-01T00:00:00Z` for anything it cannot parse.
- `post_from_json(data)` builds a `Post` from decoded JSON. It raises
  `ValueError` on malformed input.
- `Post.to_dict()` returns the JSON form shown above.
- `apply_is_liked(posts, user_id, cache)` sets `is_liked` on each post from
  Redis.

## Using the in-memory service

```python
from blogfeed.service import BlogService, NotAuthorError, default_posts

service = BlogService(default_posts())
page = service.get_posts(offset=0, limit=10, user_id="user1")

post = service.create_post(user_id="user3", body="Hello!")
service.like_post(post.id)
service.edit_post(post.id, user_id="user3", body="Hello again!")

try:
    service.edit_post(post.id, user_id="someone-else", body="nope")
except NotAuthorError:
    pass

assert service.delete_post(post.id, user_id="user3") is True
```

`BlogService()` with no arguments starts from the two posts that
`default_posts()` returns.

`get_posts` returns a page of the feed:

- An `offset` outside the feed becomes `0`.
- A `limit` that is zero, negative or larger than the feed becomes the feed's
  length.
- On each post in the page, `is_like` is set to whether `user_id` wrote that
  post.

`create_post` puts the new post at the top of the feed. Its id is the number
of posts in the feed plus one.

Each post has a single `is_like` flag, not a flag per user:

- `like_post` adds one like only if the flag is not set, and then sets it.
- `unlike_post` removes one like only if the flag is set, and then clears it.

Errors:

- `edit_post`, `like_post` and `unlike_post` raise `PostNotFoundError` when no
  post has the given id.
- `edit_post` raises `NotAuthorError` when the user did not write the post.
- `delete_post` returns `False` in both of those cases.

## What the package does not do

- The HTTP API has no endpoints to edit, delete or unlike a post.
- The HTTP API has no way to page through posts.
- `BlogService` is not served over the network. It is a library object only.