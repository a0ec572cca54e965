"""
Inventory groups: named, ordered collections of product references.
"""

from typing import Any, List, Optional

from pydantic import ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from stocksync.core.enums import InventoryUnit, MembershipType
from stocksync.core.utils import normalize_children
from stocksync.schemas.base import BaseSchema, TimestampedRecord
from stocksync.schemas.product import _coerce_unit


class GroupMember(BaseSchema):
    model_config = ConfigDict(
        populate_by_name=True,
        alias_generator=to_camel,
        frozen=True,
        extra="ignore",
    )

    product_id: str
    product_name: str = ""
    unit: Optional[InventoryUnit] = None
    added_at: int = 0
    inventory_type: MembershipType

    @field_validator('product_id', mode='before')
    @classmethod
    def validate_product_id(cls, v):
        return v if v is None else str(v)

    @field_validator('unit', mode='before')
    @classmethod
    def validate_unit(cls, v):
        if v is None or v == '':
            return None
        return _coerce_unit(v)

    @field_validator('added_at', mode='before')
    @classmethod
    def validate_added_at(cls, v):
        if v is None or v == '':
            return 0
        return int(float(v))


class InventoryGroup(TimestampedRecord):
    name: str = "Unnamed Group"
    description: Optional[str] = None
    image_url: Optional[str] = None
    items: List[GroupMember] = []

    @field_validator('name', mode='before')
    @classmethod
    def validate_name(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return "Unnamed Group"
        return str(v)

    @field_validator('items', mode='before')
    @classmethod
    def validate_items(cls, v):
        if v is None:
            return []
        # The store hands back index-keyed mappings for arrays with gaps
        if isinstance(v, dict):
            v = [v[k] for k in sorted(v, key=lambda k: (len(str(k)), str(k)))]
        if not isinstance(v, list):
            return []
        return [item for item in v if isinstance(item, dict)]

    def restricted_to(self, membership: MembershipType) -> Optional["InventoryGroup"]:
        """
        This group with only ``membership`` members, or ``None`` when it has none.

        Pure read-side filter; nothing is written back.
        """
        kept = [item for item in self.items if item.inventory_type == membership]
        if not kept:
            return None
        return self.model_copy(update={"items": kept})

    def member_ids(self) -> set:
        return {item.product_id for item in self.items}


def normalize_groups(raw: Any) -> List[InventoryGroup]:
    return normalize_children(raw, InventoryGroup.from_store, "inventory group")


def filter_groups(groups: List[InventoryGroup], membership: MembershipType) -> List[InventoryGroup]:
    """Groups holding at least one ``membership`` member, pruned to those members."""
    filtered = []
    for group in groups:
        restricted = group.restricted_to(membership)
        if restricted is not None:
            filtered.append(restricted)
    return filtered
