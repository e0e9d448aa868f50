from typing import Generic, List, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AddItemIn(CamelModel):
    product_id: int = Field(..., gt=0)
    quantity: int = Field(1, strict=True)


class UpdateItemIn(CamelModel):
    product_id: int = Field(..., gt=0)
    quantity: int = Field(..., strict=True)


class CartItemOut(CamelModel):
    product_id: int
    quantity: int
    price_snapshot: int
    line_total_cents: int


class CartOut(CamelModel):
    id: Optional[int] = None
    session_id: Optional[str] = None
    user_id: Optional[str] = None
    version: int = 0
    items: List[CartItemOut] = []
    total_items: int = 0
    total_cents: int = 0


class Success(BaseModel, Generic[T]):
    success: Literal[True] = True
    data: T
    message: Optional[str] = None


class Failure(BaseModel):
    success: Literal[False] = False
    data: None = None
    message: str
