from typing import Generic, List, TypeVar

from agrimarket.schemas.base import BaseSchema

T = TypeVar("T")


class PaginatedResponse(BaseSchema, Generic[T]):
    items: List[T]
    total: int
    page: int
    per_page: int
    total_pages: int
    has_next: bool
    has_prev: bool


def paginate(query, page: int, per_page: int) -> dict:
    total_count = query.count()
    total_pages = (total_count + per_page - 1) // per_page

    items = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": items,
        "total": total_count,
        "page": page,
        "per_page": per_page,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }
