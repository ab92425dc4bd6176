from __future__ import annotations

from threading import Lock
from typing import Any, Callable, Mapping, Protocol

from .post import Post, sort_newest_first
from .results import GatewayResult

Listener = Callable[[tuple[Post, ...]], None]


class PostSource(Protocol):
    def list_posts(self) -> GatewayResult[list[Post]]: ...


class PostStore:
    """
    Process-wide cache of the post collection.

    State changes only through refresh, add_local, merge_local and apply.
    The collection stays sorted newest first. Posts are never removed here;
    a resolved post stays until a refresh brings the backend's active-only
    listing.

    Concurrent refreshes are not ordered: the fetch runs outside the lock and
    whichever call completes last replaces the collection.
    """

    def __init__(self, source: PostSource, *, initial: list[Post] | None = None) -> None:
        self._source = source
        self._lock = Lock()
        self._posts: tuple[Post, ...] = tuple(sort_newest_first(initial or ()))
        self._loading_count = 0
        self._last_error: str | None = None
        self._listeners: list[Listener] = []

    @property
    def posts(self) -> tuple[Post, ...]:
        return self._posts

    @property
    def is_loading(self) -> bool:
        return self._loading_count > 0

    @property
    def last_error(self) -> str | None:
        return self._last_error

    def get(self, post_id: str) -> Post | None:
        for post in self._posts:
            if post.id == post_id:
                return post
        return None

    def find(self, predicate: Callable[[Post], bool]) -> list[Post]:
        return [post for post in self._posts if predicate(post)]

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def refresh(self, *, silent: bool = False) -> GatewayResult[list[Post]]:
        """
        Fetch the full collection and swap it in once the fetch completes.

        A silent refresh leaves the loading flag alone so views do not flash a
        spinner. A failed refresh keeps the current collection.
        """
        if not silent:
            with self._lock:
                self._loading_count += 1
        try:
            result = self._source.list_posts()
        finally:
            if not silent:
                with self._lock:
                    self._loading_count -= 1

        with self._lock:
            if result.ok and result.data is not None:
                self._posts = tuple(sort_newest_first(result.data))
                self._last_error = None
            else:
                self._last_error = result.error or "Failed to fetch posts"
            snapshot = self._posts

        if result.ok:
            self._notify(snapshot)
        return result

    def add_local(self, post: Post) -> None:
        """Insert a just-created post (replacing any entry with its id) and re-sort."""
        with self._lock:
            others = [p for p in self._posts if p.id != post.id]
            self._posts = tuple(sort_newest_first([post, *others]))
            snapshot = self._posts
        self._notify(snapshot)

    def merge_local(self, post_id: str, changes: Mapping[str, Any]) -> Post | None:
        """
        Shallow-merge `changes` into the cached post with `post_id`.

        Returns the merged post, or None when the id is not cached. Unknown
        field names raise ValueError.
        """
        with self._lock:
            updated: Post | None = None
            posts: list[Post] = []
            for post in self._posts:
                if post.id == post_id:
                    updated = post.merged(changes)
                    posts.append(updated)
                else:
                    posts.append(post)
            if updated is None:
                return None
            self._posts = tuple(sort_newest_first(posts))
            snapshot = self._posts
        self._notify(snapshot)
        return updated

    def apply(self, post: Post) -> Post | None:
        """Optimistic merge of a full post returned by a mutation."""
        return self.merge_local(post.id, post.changes())

    def _notify(self, snapshot: tuple[Post, ...]) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(snapshot)
