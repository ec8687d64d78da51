from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    code: str
    message: str


class TableCreate(BaseModel):
    number: str
    capacity: int = Field(gt=0)
    location: str | None = None
    description: str | None = None


class TableResponse(BaseModel):
    id: str
    number: str
    capacity: int
    location: str | None = None
    description: str | None = None
    status: str


class BookingCreate(BaseModel):
    table_id: str
    booking_date: date
    slot: str
    number_of_guests: int = Field(gt=0)
    duration: int = Field(default=2, gt=0)
    special_requests: str | None = None


class BookingResponse(BaseModel):
    id: str
    customer_id: str
    table_id: str
    booking_date: date
    slot: str
    duration: int
    number_of_guests: int
    status: str
    special_requests: str | None = None
    created_at: datetime


class NoShowSweepRequest(BaseModel):
    before: date | None = None


class NoShowSweepResponse(BaseModel):
    count: int
    booking_ids: list[str]


class MenuItemCreate(BaseModel):
    name: str
    price: Decimal = Field(ge=0)
    category: str = "COFFEE"
    description: str | None = None
    preparation_time: int = Field(default=5, ge=0)
    available: bool = True


class MenuItemUpdate(BaseModel):
    price: Decimal | None = Field(default=None, ge=0)
    available: bool | None = None


class MenuItemResponse(BaseModel):
    id: str
    name: str
    description: str | None = None
    price: Decimal
    category: str
    available: bool
    preparation_time: int


class OrderLineRequest(BaseModel):
    menu_item_id: str
    quantity: int = Field(gt=0)
    special_instructions: str | None = None


class OrderCreate(BaseModel):
    booking_id: str | None = None
    items: list[OrderLineRequest]
    special_instructions: str | None = None


class OrderItemResponse(BaseModel):
    menu_item_id: str
    menu_item_name: str
    unit_price: Decimal
    quantity: int
    line_total: Decimal
    special_instructions: str | None = None


class OrderResponse(BaseModel):
    id: str
    customer_id: str
    booking_id: str | None = None
    status: str
    total_amount: Decimal
    special_instructions: str | None = None
    items: list[OrderItemResponse]
    created_at: datetime
    updated_at: datetime


class OrderStatusUpdate(BaseModel):
    status: str


class PaymentIntentRequest(BaseModel):
    order_id: str
    amount: Decimal = Field(gt=0)
    currency: str | None = None


class PaymentIntentResponse(BaseModel):
    payment_id: str
    order_id: str
    gateway_order_ref: str
    amount: Decimal
    amount_minor_units: int
    currency: str
    key_id: str | None = None


class RazorpayVerifyRequest(BaseModel):
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


class PaymentResultResponse(BaseModel):
    success: bool
    status: str
    payment_id: str
    order_id: str
    gateway_order_ref: str
    gateway_payment_ref: str | None = None
    amount: Decimal
    payment_date: datetime | None = None
    replayed: bool
    message: str


class ManualPaymentRequest(BaseModel):
    order_id: str
    amount: Decimal = Field(gt=0)
    method: str


class PaymentResponse(BaseModel):
    id: str
    order_id: str
    amount: Decimal
    currency: str
    method: str
    status: str
    success: bool
    external_order_ref: str | None = None
    external_payment_ref: str | None = None
    transaction_id: str | None = None
    payment_date: datetime | None = None


class OutboxEventResponse(BaseModel):
    id: str
    aggregate_type: str
    aggregate_id: str
    event_type: str
    status: str
    attempts: int
    last_error: str | None = None
    created_at: str
