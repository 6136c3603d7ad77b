# demandes/utils/pagination.py
from typing import Tuple
from pydantic import BaseModel


class PageMeta(BaseModel):
    page: int
    page_size: int
    total: int
    total_pages: int
    has_prev: bool
    has_next: bool

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.page_size


def page_meta(total: int, page: int, page_size: int) -> PageMeta:
    """Ajusta `page` al rango válido; una colección vacía tiene una página."""
    total_pages = max((total + page_size - 1) // page_size, 1)
    page = max(min(page, total_pages), 1)
    return PageMeta(
        page=page, page_size=page_size, total=total, total_pages=total_pages,
        has_prev=page > 1, has_next=page < total_pages,
    )


def parse_sort(sort: str, allowed: Tuple[str, ...], default: str = "created_at") -> Tuple[str, int]:
    """"-campo" => descendente. Campos fuera de `allowed` caen en `default` descendente."""
    field, direction = (sort[1:], -1) if sort.startswith("-") else (sort, 1)
    if field not in allowed:
        return default, -1
    return field, direction
