from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Iterable

from wikifeed.models.schemas import ItemDetail, RankedItem

if TYPE_CHECKING:
    from wikifeed.config.settings import Settings


def is_complete(detail: ItemDetail) -> bool:
    """
    An article is only worth storing with both an abstract and an image.
    A stale complete row beats a fresh partial one.
    """
    return bool(detail.extract.strip()) and len(detail.media) > 0


class SpecialPageFilter:
    """
    Matches ranked entries that are not articles: search pages, the main
    page and its localized variants.
    """

    def __init__(
        self,
        prefixes: Iterable[str] = (),
        titles: Iterable[str] = (),
        markers: Iterable[str] = (),
    ) -> None:
        self.prefixes = tuple(prefixes)
        self.titles = frozenset(titles)
        self.markers = tuple(markers)

    @classmethod
    def from_settings(cls, s: "Settings") -> "SpecialPageFilter":
        return cls(
            prefixes=s.special_page_prefixes,
            titles=s.special_page_titles,
            markers=s.special_page_markers,
        )

    def __call__(self, article: str) -> bool:
        if self.prefixes and article.startswith(self.prefixes):
            return True
        if article in self.titles:
            return True
        return any(m in article for m in self.markers)


def filter_special(articles: Iterable[RankedItem], skip: Callable[[str], bool]) -> list[RankedItem]:
    return [a for a in articles if not skip(a.article)]
