"""
Order models.

Mirrors the shop platform's orders/create webhook body. Orders replayed from
the Admin API are reshaped into the same contract before processing.
"""

from typing import Optional, Union
from pydantic import ConfigDict, Field, field_validator

from models.base import BaseSchema


class LineItemProperty(BaseSchema):
    """Customer-supplied key/value attached to a line item."""

    name: str = Field(..., description="Property key (e.g. call_sign)")
    value: Optional[str] = Field(None, description="Property value")

    @field_validator("value", mode="before")
    @classmethod
    def coerce_value(cls, v):
        # Storefront forms can submit numbers
        if v is None or isinstance(v, str):
            return v
        return str(v)


class LineItem(BaseSchema):
    """Purchased line item."""

    id: Union[int, str] = Field(..., description="Numeric line item ID")
    title: str = Field(..., description="Product title")
    variant_title: Optional[str] = Field(None, description="Variant descriptor, e.g. 'White / L'")
    properties: list[LineItemProperty] = Field(default_factory=list)

    @field_validator("properties", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        return v or []

    def property_value(self, name: str) -> Optional[str]:
        """Value of the first property with this name, if any."""
        for prop in self.properties:
            if prop.name == name:
                return prop.value
        return None


class OrderPayload(BaseSchema):
    """
    Order as consumed by the fulfillment pipeline.

    Notes are kept verbatim: appended annotations must not rewrite
    what staff or customers already wrote.
    """

    model_config = ConfigDict(str_strip_whitespace=False)

    admin_graphql_api_id: str = Field(..., min_length=1, description="Order GID")
    name: str = Field(..., min_length=1, description="Display name, e.g. #1001")
    note: Optional[str] = Field(None, description="Order note")
    tags: list[str] = Field(default_factory=list, description="Current order tags")
    line_items: list[LineItem] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, v):
        # Webhook bodies carry tags as one comma-separated string
        if v is None:
            return []
        if isinstance(v, str):
            return [tag.strip() for tag in v.split(",") if tag.strip()]
        return v

    @field_validator("line_items", mode="before")
    @classmethod
    def line_items_none_as_empty(cls, v):
        return v or []

    def has_tag(self, tag: str) -> bool:
        """Check whether the order carries a tag."""
        return tag in self.tags


class CustomizationRequest(BaseSchema):
    """One customizable line item of an order, with its position among them."""

    line_item: LineItem
    call_sign: str = Field(..., min_length=1)
    item_index: int = Field(..., ge=1, description="1-based position among custom items")
    total_custom_items: int = Field(..., ge=1)
