from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, computed_field

T = TypeVar("T")


def to_camel(value: str) -> str:
    """Convert snake_case field names to lowerCamelCase for API payloads."""
    if "_" not in value:
        return value
    head, *tail = value.split("_")
    return head + "".join(word.capitalize() for word in tail if word)


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class Page(CamelModel, Generic[T]):
    """One page of a newest-first listing."""

    items: list[T]
    page: int
    size: int
    total: int

    @computed_field(alias="totalPages")
    @property
    def total_pages(self) -> int:
        if self.size <= 0:
            return 0
        return -(-self.total // self.size)
