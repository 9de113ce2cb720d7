"""
Shop domain models.

Cached payloads are serialized with camelCase field names so entries stay
readable by other services sharing the same Redis keys.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model: snake_case attributes, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Shop(CamelModel):
    id: int | None = None
    name: str = Field(..., min_length=1)
    type_id: int | None = None
    images: str | None = None
    area: str | None = None
    address: str | None = None
    x: float | None = Field(default=None, description="Longitude")
    y: float | None = Field(default=None, description="Latitude")
    avg_price: int | None = None
    sold: int = 0
    comments: int = 0
    score: int = Field(default=0, description="Rating x10 (1-5 stars => 10-50)")
    open_hours: str | None = None
    create_time: datetime | None = None
    update_time: datetime | None = None


class ShopType(CamelModel):
    id: int
    name: str
    icon: str | None = None
    sort: int = 0
