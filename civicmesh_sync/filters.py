from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock
from typing import Iterable, Mapping

from .categories import Category, category_info
from .post import Post

DEFAULT_SCOPES: tuple[str, ...] = ("feed", "map")


@dataclass(frozen=True)
class FilterSelection:
    """Snapshot of one scope's filters. Empty means show everything."""

    categories: tuple[Category, ...] = ()
    subcategories: Mapping[Category, tuple[str, ...]] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.categories and not self.subcategories

    @property
    def active_count(self) -> int:
        return len(self.categories) + sum(len(v) for v in self.subcategories.values())

    def flattened_subcategories(self) -> frozenset[str]:
        return frozenset(sub for subs in self.subcategories.values() for sub in subs)

    def matches(self, post: Post) -> bool:
        """
        Whether `post` passes this selection.

        The subcategory test uses the selection flattened across categories:
        once any subcategory is selected, a post must carry one of the selected
        subcategory ids, and posts without a subcategory never pass.
        """
        if self.is_empty:
            return True
        if post.category not in self.categories:
            return False
        selected_subs = self.flattened_subcategories()
        if selected_subs:
            return post.subcategory is not None and post.subcategory in selected_subs
        return True


class _ScopeState:
    def __init__(self) -> None:
        self.categories: list[Category] = []
        self.subcategories: dict[Category, list[str]] = {}

    def snapshot(self) -> FilterSelection:
        return FilterSelection(
            categories=tuple(self.categories),
            subcategories={cat: tuple(subs) for cat, subs in self.subcategories.items()},
        )


class FilterCoordinator:
    """
    Independent category/subcategory filters per presentation scope.

    Deselecting a category drops its subcategory selections; selecting a
    subcategory selects its parent category. Unknown scopes are created on
    first use.
    """

    def __init__(self, scopes: Iterable[str] = DEFAULT_SCOPES) -> None:
        self._lock = Lock()
        self._scopes: dict[str, _ScopeState] = {scope: _ScopeState() for scope in scopes}

    @property
    def scopes(self) -> tuple[str, ...]:
        return tuple(self._scopes)

    def _state(self, scope: str) -> _ScopeState:
        state = self._scopes.get(scope)
        if state is None:
            state = self._scopes[scope] = _ScopeState()
        return state

    def toggle_category(self, scope: str, category: Category) -> FilterSelection:
        category_info(category)
        with self._lock:
            state = self._state(scope)
            if category in state.categories:
                state.categories.remove(category)
                state.subcategories.pop(category, None)
            else:
                state.categories.append(category)
            return state.snapshot()

    def toggle_subcategory(self, scope: str, category: Category, subcategory_id: str) -> FilterSelection:
        if subcategory_id not in category_info(category).subcategory_ids():
            raise ValueError(f"Unknown subcategory for {category}: {subcategory_id!r}")

        with self._lock:
            state = self._state(scope)
            current = state.subcategories.get(category, [])
            if subcategory_id in current:
                remaining = [s for s in current if s != subcategory_id]
            else:
                remaining = [*current, subcategory_id]

            if remaining:
                state.subcategories[category] = remaining
            else:
                state.subcategories.pop(category, None)

            if category not in state.categories:
                state.categories.append(category)
            return state.snapshot()

    def clear(self, scope: str) -> FilterSelection:
        with self._lock:
            self._scopes[scope] = _ScopeState()
            return self._scopes[scope].snapshot()

    def selection(self, scope: str) -> FilterSelection:
        with self._lock:
            return self._state(scope).snapshot()

    def is_category_selected(self, scope: str, category: Category) -> bool:
        return category in self.selection(scope).categories

    def is_subcategory_selected(self, scope: str, category: Category, subcategory_id: str) -> bool:
        return subcategory_id in self.selection(scope).subcategories.get(category, ())

    def has_active_filters(self, scope: str) -> bool:
        return not self.selection(scope).is_empty

    def active_filters_count(self, scope: str) -> int:
        return self.selection(scope).active_count

    def is_visible(self, scope: str, post: Post) -> bool:
        return self.selection(scope).matches(post)

    def apply(self, scope: str, posts: Iterable[Post]) -> list[Post]:
        """Visible subset of `posts` for `scope`, in input order."""
        selection = self.selection(scope)
        return [post for post in posts if selection.matches(post)]
