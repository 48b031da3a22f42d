"""
CompareBuy — Core Pydantic Models
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field

# ============================================================
# Catalog Documents
# ============================================================

class Product(BaseModel):
    """A product document. Unknown keys are kept as-is."""
    model_config = ConfigDict(extra="allow")

    name: str
    brand: Optional[str] = None
    category: Optional[str] = None
    features: dict[str, Any] = Field(default_factory=dict)
    price: Optional[Any] = None
    rating: Optional[float] = None
    image: Optional[str] = None

def product_document(product: Product) -> dict[str, Any]:
    """The stored JSON form: only the keys the document actually had."""
    return product.model_dump(mode="json", exclude_unset=True)

class ProductSummary(BaseModel):
    name: str
    brand: Optional[str] = None

class ProductListing(BaseModel):
    name: str
    brand: Optional[str] = None
    image: Optional[str] = None
    price: Optional[Any] = None

class Definition(BaseModel):
    feature: str
    definition: str
    category: Optional[str] = None

class SchemaSettings(BaseModel):
    model_config = ConfigDict(extra="allow")

    mandatory_fields: list[str] = Field(default_factory=list)

class CategorySchema(BaseModel):
    """Per-category schema document, keyed by its ``Category`` field."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    category: str = Field(alias="Category")
    settings: SchemaSettings = Field(default_factory=SchemaSettings)

class PriceRecord(BaseModel):
    category: str
    brand: str
    product_name: str
    price: Any
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

# ============================================================
# API Request/Response Models
# ============================================================

class PriceUpdateRequest(BaseModel):
    category: Optional[str] = None
    brand: Optional[str] = None
    name: Optional[str] = None
    price: Optional[Any] = None

class PriceUpdateResult(BaseModel):
    success: bool
    message: str
    updatedProduct: Optional[dict[str, Any]] = None

class DefinitionsRequest(BaseModel):
    category: Optional[str] = None
    definitions: list[Definition] = Field(default_factory=list)

class HealthResponse(BaseModel):
    status: str
    components: dict[str, dict]
    version: str
    uptime_seconds: int
    request_count: int

# ============================================================
# Feature Tree Variant
# ============================================================

@dataclass(frozen=True)
class Scalar:
    value: Any

@dataclass(frozen=True)
class Nested:
    children: dict[str, "FeatureValue"] = field(default_factory=dict)

FeatureValue = Union[Scalar, Nested]

def to_feature_value(raw: Any) -> FeatureValue:
    """Tag a raw JSON value. Lists are keyed by their indices."""
    if isinstance(raw, (Scalar, Nested)):
        return raw
    if isinstance(raw, dict):
        return Nested({str(k): to_feature_value(v) for k, v in raw.items()})
    if isinstance(raw, (list, tuple)):
        return Nested({str(i): to_feature_value(v) for i, v in enumerate(raw)})
    return Scalar(raw)

# ============================================================
# Comparison Rows (merger output)
# ============================================================

class SectionRow(BaseModel):
    kind: Literal["section"] = "section"
    label: str

class SubSectionRow(BaseModel):
    kind: Literal["subsection"] = "subsection"
    label: str
    depth: int = 1
    definition: Optional[str] = None

class LeafRow(BaseModel):
    kind: Literal["leaf"] = "leaf"
    label: str
    depth: int = 1
    definition: Optional[str] = None
    value1: Any = "No"
    value2: Any = "No"

Row = Annotated[Union[SectionRow, SubSectionRow, LeafRow], Field(discriminator="kind")]

# ============================================================
# Comparison Table (renderer output)
# ============================================================

class Cell(BaseModel):
    text: str
    colspan: int = 1
    definition: Optional[str] = None  # set => label is interactive

class TableRow(BaseModel):
    kind: Literal["section", "subsection", "leaf"]
    cells: list[Cell]
    background: Optional[str] = None
    bold: bool = False

class ComparisonTable(BaseModel):
    category: str
    product1: str
    product2: str
    headers: list[str]
    rows: list[TableRow] = Field(default_factory=list)
