# Order, quote and status message models shared by every service
# JSON field names are camelCase on the wire; Python attributes stay snake_case.

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_validator, model_validator
from pydantic.alias_generators import to_camel
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional, Dict, Any


# Decimals travel as JSON numbers; Python code keeps exact Decimal arithmetic
JsonDecimal = Annotated[
    Decimal,
    PlainSerializer(lambda v: float(v), return_type=float, when_used="json"),
]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderEngineBaseModel(BaseModel):
    """Base model for all order engine schemas (camelCase JSON, snake_case attributes)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class OrderType(str, Enum):
    MARKET = "market"
    LIMIT = "limit"
    SNIPER = "sniper"


class OrderStatus(str, Enum):
    """Order lifecycle: pending -> routing -> building -> submitted -> confirmed | failed"""
    PENDING = "pending"
    ROUTING = "routing"
    BUILDING = "building"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.CONFIRMED, OrderStatus.FAILED)

    def can_transition_to(self, target: "OrderStatus") -> bool:
        """True when `target` is a legal next status.

        Stages only move forward one step at a time; FAILED is reachable from
        any non-terminal stage; terminal states accept nothing.
        """
        if self.is_terminal:
            return False
        if target is OrderStatus.FAILED:
            return True
        return target in _NEXT_STAGE.get(self, ())


_STATUS_RANK = {
    OrderStatus.PENDING: 0,
    OrderStatus.ROUTING: 1,
    OrderStatus.BUILDING: 2,
    OrderStatus.SUBMITTED: 3,
    OrderStatus.CONFIRMED: 4,
    OrderStatus.FAILED: 4,
}

_NEXT_STAGE = {
    OrderStatus.PENDING: (OrderStatus.ROUTING,),
    OrderStatus.ROUTING: (OrderStatus.BUILDING,),
    OrderStatus.BUILDING: (OrderStatus.SUBMITTED,),
    OrderStatus.SUBMITTED: (OrderStatus.CONFIRMED,),
}


class Order(OrderEngineBaseModel):
    """Durable order record"""
    id: str = Field(..., min_length=1)
    type: OrderType = OrderType.MARKET
    token_in: str
    token_out: str
    amount: JsonDecimal = Field(..., gt=0)
    status: OrderStatus = OrderStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    tx_hash: Optional[str] = None
    executed_price: Optional[JsonDecimal] = None
    selected_route: Optional[str] = None
    error: Optional[str] = None

    @property
    def pair(self) -> str:
        return f"{self.token_in}/{self.token_out}"


class OrderRequest(OrderEngineBaseModel):
    """Submission payload accepted by the inbound API"""
    type: OrderType = OrderType.MARKET
    token_in: str = Field(..., min_length=1)
    token_out: str = Field(..., min_length=1)
    amount: JsonDecimal = Field(..., gt=0)
    slippage: Optional[JsonDecimal] = Field(default=None, ge=0, le=1)

    @field_validator("token_in", "token_out")
    @classmethod
    def strip_token(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("token symbol must not be blank")
        return v

    @model_validator(mode="after")
    def distinct_tokens(self) -> "OrderRequest":
        if self.token_in.upper() == self.token_out.upper():
            raise ValueError("tokenIn and tokenOut must differ")
        return self


class Quote(OrderEngineBaseModel):
    """Priced offer from a liquidity source; never persisted"""
    price: JsonDecimal
    fee: JsonDecimal = Field(..., ge=0, lt=1)
    liquidity: JsonDecimal
    estimated_gas: JsonDecimal = Decimal("0")

    @property
    def effective_price(self) -> Decimal:
        """Price net of fee and estimated execution cost; used to rank quotes."""
        return self.price * (Decimal(1) - self.fee) - self.estimated_gas


class RoutedQuote(OrderEngineBaseModel):
    """Winning source and its quote"""
    source: str
    quote: Quote


class SwapResult(OrderEngineBaseModel):
    tx_hash: str
    executed_price: JsonDecimal
    actual_amount: JsonDecimal
    gas_used: JsonDecimal


class StatusPayload(OrderEngineBaseModel):
    tx_hash: Optional[str] = None
    executed_price: Optional[JsonDecimal] = None
    selected_route: Optional[str] = None
    error: Optional[str] = None


class StatusMessage(OrderEngineBaseModel):
    """One status transition as delivered to the order's observer"""
    order_id: str
    status: OrderStatus
    timestamp: datetime = Field(default_factory=utcnow)
    data: Optional[StatusPayload] = None

    @classmethod
    def for_transition(cls, order_id: str, status: OrderStatus,
                       data: Optional[Dict[str, Any]] = None) -> "StatusMessage":
        payload = StatusPayload(**data) if data else None
        return cls(order_id=order_id, status=status, data=payload)
