from __future__ import annotations

from pydantic import BaseModel


class PageFields(BaseModel):
    page: int
    page_size: int
    total: int
    pages: int


def page_fields(page: int, page_size: int, total: int) -> dict:
    pages = (total + page_size - 1) // page_size if page_size else 0
    return {"page": page, "page_size": page_size, "total": total, "pages": pages}
