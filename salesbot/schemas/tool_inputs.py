"""Argument models for the agent tools.

Each tool validates its raw JSON arguments against one of these models; the
JSON schema of the model is what the language model sees as the parameters.
"""
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class NoArgs(BaseModel):
    pass


class SearchInventoryArgs(BaseModel):
    query: str = Field(..., min_length=2, description="Texto a buscar en nombre, SKU o descripción")
    limit: int = Field(8, gt=0, le=20)


class ProductSearchArgs(BaseModel):
    query: str = Field(..., min_length=1, description="Palabras clave del producto")
    limit: int = Field(8, gt=0, le=20)
    in_stock_only: bool = False


class SkuArgs(BaseModel):
    sku: str = Field(..., min_length=1)


class CheckStockArgs(BaseModel):
    sku: str
    qty: int = Field(1, gt=0)


class ListAllProductsArgs(BaseModel):
    in_stock_only: bool = False
    limit: int = Field(20, gt=0, le=50)
    after_id: Optional[int] = Field(None, description="Cursor: id del último producto de la página anterior")
    order_by: Literal["name_asc", "name_desc", "created_desc", "updated_desc"] = "name_asc"


class CartAddItemArgs(BaseModel):
    sku: str = Field(..., min_length=1)
    qty: int = Field(1, description="Cantidad a agregar")


class CartSetPaymentArgs(BaseModel):
    method: str = Field(..., description="Clave del método de pago: cash, transfer o card")


class CartSetShippingArgs(BaseModel):
    method: str = Field(..., description="domicilio, punto_medio o recoleccion")
    address: Optional[str] = None
    meetup_area: Optional[str] = None


class CartSetContactArgs(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None


class CheckoutSubmitArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    confirm: bool = True
    idempotency_key: Optional[str] = Field(None, alias="idempotencyKey")
