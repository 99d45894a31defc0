"""Catalog and AI extraction schemas."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class QueryIntent(str, Enum):
    CONSULTAR_PRECIO = "CONSULTAR_PRECIO"
    CONSULTAR_STOCK = "CONSULTAR_STOCK"
    HACER_PEDIDO = "HACER_PEDIDO"
    OTRO = "OTRO"


class ProductCandidate(BaseModel):
    """A catalog search hit."""

    id: int
    name: str
    price: float
    stock: int = 0
    brand: Optional[str] = None
    category: Optional[str] = None

    @property
    def available(self) -> bool:
        return self.stock > 0


class ProductQuery(BaseModel):
    """What a customer is asking about, as extracted from free text."""

    product: str = ""
    brand: Optional[str] = None
    category: Optional[str] = None
    intent: QueryIntent = QueryIntent.OTRO

    @field_validator("brand", "category", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and value.strip().lower() in ("", "null", "none"):
            return None
        return value

    @field_validator("intent", mode="before")
    @classmethod
    def _unknown_intent_to_otro(cls, value):
        if isinstance(value, str) and value.upper() in QueryIntent.__members__:
            return value.upper()
        return QueryIntent.OTRO


class OrderLine(BaseModel):
    name: str = Field(min_length=1)
    quantity: int = Field(default=1, ge=1)


class OrderExtraction(BaseModel):
    """Structured order parsed from a free-text utterance by the AI collaborator."""

    intent: str = "OTRO"
    products: list[OrderLine] = Field(default_factory=list)
    reply: Optional[str] = None

    @property
    def is_order(self) -> bool:
        return self.intent == "HACER_PEDIDO" and bool(self.products)
