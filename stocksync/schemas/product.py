from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts snake_case or camelCase input, serializes as camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class ProductCreate(CamelModel):
    name: str = Field(min_length=1)
    sku: str = Field(min_length=1)
    current_stock: int = Field(default=0, ge=0)
    safety_stock: int = Field(default=0, ge=0)
    location: str = ""


class ProductOut(CamelModel):
    id: str
    name: str
    sku: str
    current_stock: int
    safety_stock: int
    location: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None
