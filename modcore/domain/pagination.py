from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, TypeVar

from modcore.core.config import get_settings
from modcore.core.errors import InvalidArgumentError


T = TypeVar("T")


@dataclass(frozen=True)
class Page(Generic[T]):
    items: list[T] = field(default_factory=list)
    offset: int = 0
    page_size: int = 0
    total: int = 0

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.items) < self.total


def normalize_page(offset: int, page_size: int | None) -> tuple[int, int]:
    # Clamp page sizes into [1, max_page_size]; negative offsets are a caller bug.
    settings = get_settings()
    if offset < 0:
        raise InvalidArgumentError("offset must be >= 0")
    size = settings.default_page_size if page_size is None else page_size
    return offset, max(1, min(int(size), settings.max_page_size))
