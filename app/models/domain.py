"""Pydantic domain models with strict validation."""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class DraftPhase(str, Enum):
    """Declared step of the order wizard."""
    PARTY = "PARTY"
    ADDRESS = "ADDRESS"
    ITEMS = "ITEMS"
    CONFIRM = "CONFIRM"

    @property
    def rank(self) -> int:
        return list(DraftPhase).index(self)


class WorkflowCategory(str, Enum):
    """Workflow a conversation is scoped to."""
    SALES_ORDER = "SALES_ORDER"
    GENERAL = "GENERAL"


class MessageRole(str, Enum):
    """Conversation turn author."""
    USER = "user"
    ASSISTANT = "assistant"


class PartyAddress(BaseModel):
    """Address entry of a party record."""
    name: str = ""
    address: str = ""
    country: str = ""

    model_config = {"extra": "ignore"}


class PartySnapshot(BaseModel):
    """Normalized snapshot of a party (customer) stored in the draft."""
    id: str = Field(..., description="Party identifier in the system of record")
    name: str = Field(..., description="Party display name")
    address: str = Field("", description="Primary address")
    country: str = Field("", description="Primary address country")
    tax_id: str = Field("n/a", description="VAT / tax identifier")
    currency: str = Field("EUR", description="Default currency")
    addresses: List[PartyAddress] = Field(default_factory=list, description="All known addresses")

    model_config = {"extra": "forbid"}

    @classmethod
    def from_erp(cls, record: Dict[str, Any]) -> "PartySnapshot":
        """Build a snapshot from a raw customer record."""
        addresses = [
            PartyAddress.model_validate(a)
            for a in (record.get("addresses") or [])
            if isinstance(a, dict)
        ]
        primary = addresses[0] if addresses else PartyAddress()
        return cls(
            id=str(record["id"]),
            name=str(record.get("name") or ""),
            address=primary.address or "",
            country=primary.country or "",
            tax_id=record.get("vat_no") or "n/a",
            currency=record.get("default_currency") or "EUR",
            addresses=addresses,
        )


class CatalogItem(BaseModel):
    """Catalog item as returned by the system of record."""
    id: str
    code: str
    name: str
    uom: str = ""
    unit_price: float = 0.0
    currency: str = "EUR"
    vat: float = 0.0

    @classmethod
    def from_erp(cls, record: Dict[str, Any]) -> "CatalogItem":
        """Build a catalog item from a raw product record."""
        prices = record.get("prices") or {}
        return cls(
            id=str(record["id"]),
            code=str(record.get("internal_id") or ""),
            name=str(record.get("name") or ""),
            uom=str(record.get("uom") or ""),
            unit_price=float(prices.get("unit") or 0),
            currency=prices.get("currency") or "EUR",
            vat=float(prices.get("vat") or 0),
        )


class LineItem(BaseModel):
    """Draft line item. At most one per code."""
    catalog_item_id: str
    code: str
    name: str
    quantity: float
    uom: str = ""
    unit_price: float = 0.0
    currency: str = "EUR"
    vat: float = 0.0
    base_price: float = 0.0
    discount_percent: float = 0.0

    model_config = {"extra": "forbid"}

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity

    @classmethod
    def from_catalog(cls, item: CatalogItem, quantity: float) -> "LineItem":
        return cls(
            catalog_item_id=item.id,
            code=item.code,
            name=item.name,
            quantity=quantity,
            uom=item.uom,
            unit_price=item.unit_price,
            currency=item.currency,
            vat=item.vat,
            base_price=item.unit_price,
            discount_percent=0.0,
        )


class OrderDraft(BaseModel):
    """In-progress transaction state for one conversation."""
    conversation_id: str
    phase: DraftPhase = DraftPhase.PARTY
    party: Optional[PartySnapshot] = None
    line_items: List[LineItem] = Field(default_factory=list)
    shipping_address: Optional[str] = None
    expected_shipping_time: Optional[str] = None
    notes: Optional[str] = None
    version: int = 0

    def find_line(self, code: str) -> Optional[int]:
        """Index of the line item matching code (case-insensitive), or None."""
        wanted = code.strip().lower()
        for index, line in enumerate(self.line_items):
            if line.code.lower() == wanted:
                return index
        return None

    @property
    def total(self) -> float:
        return sum(line.line_total for line in self.line_items)

    @property
    def is_empty(self) -> bool:
        return self.party is None and not self.line_items


class DraftReadiness(BaseModel):
    """Completeness check of a draft."""
    ready: bool
    missing: List[str] = Field(default_factory=list)


class UpsertOutcome(BaseModel):
    """Result of a line item upsert."""
    line: LineItem
    inserted: bool
    previous_quantity: Optional[float] = None


class CustomerAttr(BaseModel):
    """Party attributes embedded in a sales order."""
    id: str
    name: str
    address: str = ""
    country: str = ""
    vat: str = ""


class OrderLinePrices(BaseModel):
    currency: str = "EUR"
    unit: float = 0.0
    vat: float = 0.0
    base_price: float = 0.0
    discount_percent: float = 0.0


class OrderLinePayload(BaseModel):
    """Sales order line in the system-of-record format."""
    id: str = Field(..., description="Catalog item identifier")
    extra_id: str = Field(..., description="Catalog item code")
    name: str
    quantity: float
    uom: str
    prices: OrderLinePrices


class SalesOrderPayload(BaseModel):
    """Sales order as submitted to the system of record."""
    customer_id: str
    customer_attr: CustomerAttr
    default_currency: str = "EUR"
    expected_shipping_time: str
    shipping_address: str
    products: List[OrderLinePayload]
    status: str = "draft"
    notes: str = ""
    version: int = 1
    total: float
    total_vat_incl: float
    priority: int = 3
    time: str

    model_config = {"extra": "forbid"}


class Conversation(BaseModel):
    """Conversation domain model."""
    conversation_id: str = Field(..., description="Unique conversation identifier")
    title: str = Field(..., description="Conversation title")
    category: WorkflowCategory = Field(WorkflowCategory.SALES_ORDER, description="Workflow category")
    last_message: Optional[str] = Field(None, description="Last message preview")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")

    model_config = {"extra": "forbid"}


class Message(BaseModel):
    """Conversation turn."""
    id: int
    conversation_id: str
    role: MessageRole
    content: str
    created_at: datetime

    model_config = {"extra": "forbid"}


class ToolCallRecord(BaseModel):
    """Structured audit record of one tool handler call."""
    conversation_id: str
    tool_name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    success: bool
    result: str
    duration_ms: int = 0
    created_at: Optional[datetime] = None


class ToolResult(BaseModel):
    """Status string returned to the planner for one tool call."""
    success: bool
    content: str
