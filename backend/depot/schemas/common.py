from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class PageMeta(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


class Page(BaseModel, Generic[T]):
    """List envelope: ``{data: [...], meta: {...}}``."""

    data: list[T]
    meta: PageMeta


class Envelope(BaseModel, Generic[T]):
    """Mutation envelope: ``{message, data}``."""

    message: str
    data: T


class MessageOut(BaseModel):
    detail: str
