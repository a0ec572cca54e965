"""
Base schemas with common functionality.
"""
from typing import Any, Dict, Type, TypeVar

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

T = TypeVar('T', bound='StoreRecord')


class BaseSchema(BaseModel):
    """Base schema with common functionality for all schemas"""

    model_config = ConfigDict(
        populate_by_name=True,
        alias_generator=to_camel,
    )


class StoreRecord(BaseSchema):
    """
    A record read from, or written to, the remote store.

    Records are immutable once built; cached copies are shared between
    consumers, so changes go through ``model_copy(update=...)``.
    Field names are snake_case in Python and camelCase in the store.
    """
    model_config = ConfigDict(
        populate_by_name=True,
        alias_generator=to_camel,
        frozen=True,
        extra="ignore",
    )

    id: str

    @classmethod
    def from_store(cls: Type[T], key: str, raw: Dict[str, Any]) -> T:
        """Build a record from a store key and its raw value."""
        return cls.model_validate({**raw, "id": key})

    def to_store(self) -> Dict[str, Any]:
        """The value to write at this record's key (the key itself is not stored)."""
        return self.model_dump(mode="json", by_alias=True, exclude={"id"}, exclude_none=True)


class TimestampedRecord(StoreRecord):
    """Store record carrying millisecond epoch timestamps"""
    created_at: int = 0
    updated_at: int = 0

    @field_validator('created_at', 'updated_at', mode='before')
    @classmethod
    def validate_timestamp(cls, v):
        if v is None or v == '':
            return 0
        try:
            return int(float(v))
        except (ValueError, TypeError):
            raise ValueError(f'Timestamp must be a number, got: {v}')
