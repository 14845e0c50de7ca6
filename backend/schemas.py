from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Optional, List
from datetime import datetime, date
from decimal import Decimal

from errors import ValidationError as HotelValidationError
from availability import to_stay_date
from models import (
    UserRole, RoomStatus, ReservationStatus, InvoiceStatus, PaymentMethod,
    OrderType, OrderStatus, InventoryCategoryType
)


class APIModel(BaseModel):
    """camelCase on the wire, snake_case in Python"""
    model_config = ConfigDict(from_attributes=True, populate_by_name=True, alias_generator=to_camel)


def _stay_date(value):
    if value is None:
        return value
    try:
        return to_stay_date(value)
    except HotelValidationError as e:
        raise ValueError(e.message)


# Auth Schemas
class LoginRequest(APIModel):
    email: EmailStr
    password: str


# Branch Schemas
class BranchBase(APIModel):
    name: str
    address: str
    phone: Optional[str] = None
    email: Optional[EmailStr] = None


class BranchCreate(BranchBase):
    active: bool = True


class BranchUpdate(APIModel):
    name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    active: Optional[bool] = None


class BranchResponse(BranchBase):
    id: int
    active: bool
    created_at: Optional[datetime] = None


# User Schemas
class UserBase(APIModel):
    email: EmailStr
    name: str
    role: UserRole
    branch_id: Optional[int] = None


class UserCreate(UserBase):
    password: str = Field(min_length=6)
    active: bool = True


class UserUpdate(APIModel):
    name: Optional[str] = None
    role: Optional[UserRole] = None
    branch_id: Optional[int] = None
    active: Optional[bool] = None
    password: Optional[str] = Field(default=None, min_length=6)


class UserResponse(UserBase):
    id: int
    active: bool
    created_at: Optional[datetime] = None


class Token(APIModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


# Room Type Schemas
class RoomTypeCreate(APIModel):
    name: str
    description: Optional[str] = None
    base_rate: Decimal = Field(ge=0, decimal_places=2)
    max_occupancy: int = Field(ge=1)
    amenities: List[str] = []
    branch_id: Optional[int] = None


class RoomTypeResponse(APIModel):
    id: int
    name: str
    description: Optional[str] = None
    base_rate: Decimal
    max_occupancy: int
    amenities: List[str] = []
    branch_id: int


# Room Schemas
class RoomCreate(APIModel):
    number: str
    floor: int
    room_type_id: int
    branch_id: Optional[int] = None
    status: RoomStatus = RoomStatus.AVAILABLE
    notes: Optional[str] = None


class RoomUpdate(APIModel):
    number: Optional[str] = None
    floor: Optional[int] = None
    room_type_id: Optional[int] = None
    status: Optional[RoomStatus] = None
    notes: Optional[str] = None


class RoomResponse(APIModel):
    id: int
    number: str
    floor: int
    room_type_id: int
    branch_id: int
    status: RoomStatus
    notes: Optional[str] = None


class RoomWithTypeResponse(RoomResponse):
    room_type: Optional[RoomTypeResponse] = None


# Guest Schemas
class GuestBase(APIModel):
    first_name: str
    last_name: str
    email: EmailStr
    phone: str
    address: Optional[str] = None
    id_number: Optional[str] = None
    id_type: Optional[str] = None
    date_of_birth: Optional[date] = None
    nationality: Optional[str] = None


class GuestCreate(GuestBase):
    pass


class GuestUpdate(APIModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    id_number: Optional[str] = None
    id_type: Optional[str] = None
    date_of_birth: Optional[date] = None
    nationality: Optional[str] = None


class GuestResponse(GuestBase):
    id: int
    total_stays: int
    created_at: Optional[datetime] = None


# Reservation Schemas
class ReservationCreate(APIModel):
    guest_id: int
    room_id: int
    branch_id: Optional[int] = None
    check_in_date: date
    check_out_date: date
    adults: int = 1
    children: int = 0
    total_amount: Optional[Decimal] = None  # computed from the room rate when omitted
    notes: Optional[str] = None

    @field_validator("check_in_date", "check_out_date", mode="before")
    @classmethod
    def normalise_dates(cls, value):
        return _stay_date(value)


class ReservationUpdate(APIModel):
    room_id: Optional[int] = None
    check_in_date: Optional[date] = None
    check_out_date: Optional[date] = None
    adults: Optional[int] = None
    children: Optional[int] = None
    status: Optional[ReservationStatus] = None
    total_amount: Optional[Decimal] = None
    paid_amount: Optional[Decimal] = None
    notes: Optional[str] = None

    @field_validator("check_in_date", "check_out_date", mode="before")
    @classmethod
    def normalise_dates(cls, value):
        return _stay_date(value)


class ReservationResponse(APIModel):
    id: int
    guest_id: int
    room_id: int
    branch_id: int
    check_in_date: date
    check_out_date: date
    actual_check_in: Optional[datetime] = None
    actual_check_out: Optional[datetime] = None
    adults: int
    children: int
    status: ReservationStatus
    total_amount: Decimal
    paid_amount: Decimal
    notes: Optional[str] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None


class ReservationDetailResponse(ReservationResponse):
    guest: Optional[GuestResponse] = None
    room: Optional[RoomResponse] = None


# Restaurant Schemas
class MenuCategoryCreate(APIModel):
    name: str
    description: Optional[str] = None
    branch_id: Optional[int] = None
    active: bool = True
    sort_order: int = 0


class MenuCategoryUpdate(APIModel):
    name: Optional[str] = None
    description: Optional[str] = None
    active: Optional[bool] = None
    sort_order: Optional[int] = None


class MenuCategoryResponse(APIModel):
    id: int
    name: str
    description: Optional[str] = None
    branch_id: int
    active: bool
    sort_order: int


class MenuItemCreate(APIModel):
    name: str
    description: Optional[str] = None
    price: Decimal = Field(ge=0, decimal_places=2)
    category_id: int
    branch_id: Optional[int] = None
    available: bool = True
    preparation_time: Optional[int] = None
    ingredients: List[str] = []


class MenuItemUpdate(APIModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    category_id: Optional[int] = None
    available: Optional[bool] = None
    preparation_time: Optional[int] = None
    ingredients: Optional[List[str]] = None


class MenuItemResponse(APIModel):
    id: int
    name: str
    description: Optional[str] = None
    price: Decimal
    category_id: int
    branch_id: int
    available: bool
    preparation_time: Optional[int] = None
    ingredients: List[str] = []


class OrderItemCreate(APIModel):
    item_id: int
    quantity: int = Field(ge=1)
    notes: Optional[str] = None


class OrderLine(APIModel):
    item_id: int
    name: str
    quantity: int
    price: Decimal
    notes: Optional[str] = None


class RestaurantOrderCreate(APIModel):
    branch_id: Optional[int] = None
    order_type: OrderType
    guest_id: Optional[int] = None
    room_id: Optional[int] = None
    items: List[OrderItemCreate] = Field(min_length=1)
    notes: Optional[str] = None


class OrderStatusUpdate(APIModel):
    status: OrderStatus


class RestaurantOrderResponse(APIModel):
    id: int
    order_number: str
    guest_id: Optional[int] = None
    room_id: Optional[int] = None
    branch_id: int
    order_type: OrderType
    status: OrderStatus
    items: List[OrderLine]
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    notes: Optional[str] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None


# Inventory Schemas
class InventoryCategoryCreate(APIModel):
    name: str
    description: Optional[str] = None
    type: InventoryCategoryType
    branch_id: Optional[int] = None


class InventoryCategoryResponse(APIModel):
    id: int
    name: str
    description: Optional[str] = None
    type: InventoryCategoryType
    branch_id: int


class InventoryItemCreate(APIModel):
    name: str
    description: Optional[str] = None
    category_id: int
    branch_id: Optional[int] = None
    current_stock: int = Field(default=0, ge=0)
    min_stock: int = Field(default=0, ge=0)
    max_stock: int = Field(default=100, ge=0)
    unit: str
    cost_per_unit: Optional[Decimal] = Field(default=None, ge=0)


class InventoryItemUpdate(APIModel):
    name: Optional[str] = None
    description: Optional[str] = None
    current_stock: Optional[int] = Field(default=None, ge=0)
    min_stock: Optional[int] = Field(default=None, ge=0)
    max_stock: Optional[int] = Field(default=None, ge=0)
    unit: Optional[str] = None
    cost_per_unit: Optional[Decimal] = Field(default=None, ge=0)


class RestockRequest(APIModel):
    quantity: int = Field(ge=1)


class InventoryItemResponse(APIModel):
    id: int
    name: str
    description: Optional[str] = None
    category_id: int
    branch_id: int
    current_stock: int
    min_stock: int
    max_stock: int
    unit: str
    cost_per_unit: Optional[Decimal] = None
    last_restocked: Optional[datetime] = None
    stock_status: str


# Invoice Schemas
class InvoiceLine(APIModel):
    description: str
    quantity: int = Field(ge=1)
    rate: Decimal = Field(ge=0)
    amount: Optional[Decimal] = None  # quantity * rate when omitted


class InvoiceCreate(APIModel):
    branch_id: Optional[int] = None
    guest_id: int
    reservation_id: Optional[int] = None
    items: List[InvoiceLine] = Field(min_length=1)
    due_date: Optional[date] = None
    notes: Optional[str] = None


class InvoiceUpdate(APIModel):
    status: Optional[InvoiceStatus] = None
    payment_method: Optional[PaymentMethod] = None
    paid_date: Optional[datetime] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None


class InvoiceResponse(APIModel):
    id: int
    invoice_number: str
    reservation_id: Optional[int] = None
    guest_id: int
    branch_id: int
    items: List[InvoiceLine]
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    status: InvoiceStatus
    due_date: date
    paid_date: Optional[datetime] = None
    payment_method: Optional[PaymentMethod] = None
    notes: Optional[str] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None


class InvoiceWithGuestResponse(InvoiceResponse):
    guest: Optional[GuestResponse] = None


# Dashboard / Report Schemas
class DashboardStats(APIModel):
    total_rooms: int
    occupied: int
    checkins: int
    revenue: Decimal


class RoomTypePerformance(APIModel):
    name: str
    total_rooms: int
    reservations: int
    revenue: Decimal


class ReportSummary(APIModel):
    period_days: int
    occupancy_rate: float
    total_revenue: Decimal
    average_daily_revenue: Decimal
    revenue_per_room: Decimal
    new_guests: int
    repeat_guests: int
    room_types: List[RoomTypePerformance]
