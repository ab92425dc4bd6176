from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, get_args

Category = Literal["alert", "warning", "help", "resources", "accessibility resources"]

DEFAULT_CATEGORY: Category = "help"


@dataclass(frozen=True)
class Subcategory:
    id: str
    label: str


@dataclass(frozen=True)
class CategoryInfo:
    value: Category
    label: str
    subcategories: tuple[Subcategory, ...]

    def subcategory_ids(self) -> tuple[str, ...]:
        return tuple(sub.id for sub in self.subcategories)


def _subs(*pairs: tuple[str, str]) -> tuple[Subcategory, ...]:
    return tuple(Subcategory(id=sub_id, label=label) for sub_id, label in pairs)


CATEGORIES: tuple[CategoryInfo, ...] = (
    CategoryInfo(
        value="alert",
        label="Alert",
        subcategories=_subs(
            ("crime", "Crime"),
            ("accident", "Accident"),
            ("natural-disaster", "Natural Disaster"),
            ("fire", "Fire"),
            ("medical-emergency", "Medical Emergency"),
            ("other", "Other"),
        ),
    ),
    CategoryInfo(
        value="warning",
        label="Warning",
        subcategories=_subs(
            ("road-closure", "Road Closure"),
            ("weather", "Weather"),
            ("health-advisory", "Health Advisory"),
            ("safety-alert", "Safety Alert"),
            ("construction", "Construction"),
            ("other", "Other"),
        ),
    ),
    CategoryInfo(
        value="help",
        label="Help",
        subcategories=_subs(
            ("medical", "Medical"),
            ("shelter", "Shelter"),
            ("food", "Food"),
            ("transportation", "Transportation"),
            ("information", "Information"),
            ("rescue", "Rescue"),
            ("other", "Other"),
        ),
    ),
    CategoryInfo(
        value="resources",
        label="Resources",
        subcategories=_subs(
            ("food-bank", "Food Bank"),
            ("water", "Water"),
            ("shelter", "Shelter"),
            ("medical-supplies", "Medical Supplies"),
            ("charging-station", "Charging Station"),
            ("wifi", "WiFi"),
            ("other", "Other"),
        ),
    ),
    CategoryInfo(
        value="accessibility resources",
        label="Accessibility Resources",
        subcategories=_subs(
            ("wheelchair-access", "Wheelchair Access"),
            ("sign-language", "Sign Language"),
            ("visual-aids", "Visual Aids"),
            ("hearing-assistance", "Hearing Assistance"),
            ("accessible-restroom", "Accessible Restroom"),
            ("parking", "Parking"),
            ("other", "Other"),
        ),
    ),
)

CATEGORY_VALUES: tuple[Category, ...] = get_args(Category)

_BY_VALUE: dict[str, CategoryInfo] = {info.value: info for info in CATEGORIES}

# Backend labels that map onto a category without being its display label.
_LABEL_ALIASES: dict[str, Category] = {
    "accessibility": "accessibility resources",
}


def is_category(value: object) -> bool:
    return isinstance(value, str) and value in _BY_VALUE


def category_info(value: str) -> CategoryInfo:
    info = _BY_VALUE.get(value)
    if info is None:
        raise ValueError(f"Unknown category: {value!r}")
    return info


def category_label(value: str) -> str:
    """Backend display label for a category; unknown values map to the default label."""
    info = _BY_VALUE.get(value) or _BY_VALUE[DEFAULT_CATEGORY]
    return info.label


def category_from_label(raw: object) -> Category:
    """
    Match a backend-supplied category label to a canonical category.

    Matching is case-insensitive and whitespace-trimmed; anything unrecognized
    falls back to DEFAULT_CATEGORY.
    """
    key = (raw if isinstance(raw, str) else "").strip().casefold()
    if not key:
        return DEFAULT_CATEGORY

    for info in CATEGORIES:
        if key == info.value or key == info.label.casefold():
            return info.value

    return _LABEL_ALIASES.get(key, DEFAULT_CATEGORY)


def has_subcategory(category: str, subcategory_id: str) -> bool:
    info = _BY_VALUE.get(category)
    if info is None:
        return False
    return subcategory_id in info.subcategory_ids()


def subcategory_from_label(category: str, raw: object) -> str | None:
    """
    Match a backend subcategory label (or id) to a subcategory id of `category`.

    Unmatched non-empty values are returned verbatim so no backend data is lost.
    """
    if not isinstance(raw, str) or not raw.strip():
        return None

    key = raw.strip().casefold()
    info = _BY_VALUE.get(category)
    if info is not None:
        for sub in info.subcategories:
            if key == sub.id.casefold() or key == sub.label.casefold():
                return sub.id

    return raw


def subcategory_label(category: str, subcategory_id: str | None) -> str | None:
    """Backend label for a subcategory id; unknown ids pass through unchanged."""
    if not subcategory_id:
        return None

    info = _BY_VALUE.get(category)
    if info is None:
        return subcategory_id

    for sub in info.subcategories:
        if sub.id == subcategory_id:
            return sub.label
    return subcategory_id
