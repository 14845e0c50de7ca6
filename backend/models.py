from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Date, ForeignKey, Boolean, Text, JSON,
    Enum as SQLEnum, UniqueConstraint, CheckConstraint, Index
)
from sqlalchemy.orm import relationship
from datetime import datetime
import enum
from database import Base


def _enum_column(enum_cls):
    """Store enum values (not member names) as plain VARCHAR"""
    return SQLEnum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=30,
    )


class UserRole(str, enum.Enum):
    SUPER_ADMIN = "super_admin"
    BRANCH_ADMIN = "branch_admin"
    RECEPTIONIST = "receptionist"
    RESTAURANT_STAFF = "restaurant_staff"
    HOUSEKEEPING = "housekeeping"


class Permission(str, enum.Enum):
    """Feature-level permissions for RBAC"""
    MANAGE_BRANCHES = "manage_branches"
    MANAGE_USERS = "manage_users"
    MANAGE_ROOMS = "manage_rooms"
    UPDATE_ROOM_STATUS = "update_room_status"
    VIEW_ROOMS = "view_rooms"
    MANAGE_RESERVATIONS = "manage_reservations"
    MANAGE_GUESTS = "manage_guests"
    VIEW_RESTAURANT = "view_restaurant"
    MANAGE_RESTAURANT = "manage_restaurant"
    MANAGE_INVENTORY = "manage_inventory"
    MANAGE_BILLING = "manage_billing"
    VIEW_DASHBOARD = "view_dashboard"
    VIEW_REPORTS = "view_reports"


class RoomStatus(str, enum.Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    MAINTENANCE = "maintenance"
    CLEANING = "cleaning"


class ReservationStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    CANCELLED = "cancelled"


class InvoiceStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CARD = "card"
    DIGITAL_WALLET = "digital_wallet"


class OrderType(str, enum.Enum):
    ROOM_SERVICE = "room_service"
    DINE_IN = "dine_in"
    TAKEAWAY = "takeaway"


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    SERVED = "served"
    CANCELLED = "cancelled"


class InventoryCategoryType(str, enum.Enum):
    HOTEL_SUPPLIES = "hotel_supplies"
    RESTAURANT_SUPPLIES = "restaurant_supplies"


class Branch(Base):
    """An independently operated hotel location - the tenancy boundary"""
    __tablename__ = "branches"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    address = Column(Text, nullable=False)
    phone = Column(String(30))
    email = Column(String(100))
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    rooms = relationship("Room", back_populates="branch")
    room_types = relationship("RoomType", back_populates="branch")

    def __repr__(self):
        return f"<Branch {self.name}>"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(100), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=False)
    name = Column(String(100), nullable=False)
    role = Column(_enum_column(UserRole), nullable=False)
    branch_id = Column(Integer, ForeignKey("branches.id", ondelete="SET NULL"), nullable=True, index=True)  # NULL only for super_admin
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    branch = relationship("Branch")

    def __repr__(self):
        return f"<User {self.email} ({self.role})>"


class RoomType(Base):
    __tablename__ = "room_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    base_rate = Column(Numeric(10, 2), nullable=False)
    max_occupancy = Column(Integer, nullable=False)
    amenities = Column(JSON, default=list)
    branch_id = Column(Integer, ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True)

    branch = relationship("Branch", back_populates="room_types")
    rooms = relationship("Room", back_populates="room_type")

    def __repr__(self):
        return f"<RoomType {self.name} (Branch: {self.branch_id})>"


class Room(Base):
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, index=True)
    number = Column(String(20), nullable=False)
    floor = Column(Integer, nullable=False)
    room_type_id = Column(Integer, ForeignKey("room_types.id", ondelete="RESTRICT"), nullable=False, index=True)
    branch_id = Column(Integer, ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(_enum_column(RoomStatus), default=RoomStatus.AVAILABLE, nullable=False)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

    branch = relationship("Branch", back_populates="rooms")
    room_type = relationship("RoomType", back_populates="rooms")

    # Room numbers are unique within a branch
    __table_args__ = (
        UniqueConstraint("branch_id", "number", name="uq_branch_room_number"),
        Index("idx_rooms_branch_status", "branch_id", "status"),
    )

    def __repr__(self):
        return f"<Room {self.number} (Branch: {self.branch_id})>"


class Guest(Base):
    __tablename__ = "guests"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(100), nullable=False, index=True)
    phone = Column(String(30), nullable=False)
    address = Column(Text)
    id_number = Column(String(50))
    id_type = Column(String(30))  # passport, driver_license, national_id
    date_of_birth = Column(Date)
    nationality = Column(String(60))
    total_stays = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    reservations = relationship("Reservation", back_populates="guest")

    def __repr__(self):
        return f"<Guest {self.first_name} {self.last_name}>"


class Reservation(Base):
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    guest_id = Column(Integer, ForeignKey("guests.id", ondelete="RESTRICT"), nullable=False, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id", ondelete="RESTRICT"), nullable=False, index=True)
    branch_id = Column(Integer, ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True)
    check_in_date = Column(Date, nullable=False)
    check_out_date = Column(Date, nullable=False)
    actual_check_in = Column(DateTime, nullable=True)
    actual_check_out = Column(DateTime, nullable=True)
    adults = Column(Integer, nullable=False, default=1)
    children = Column(Integer, nullable=False, default=0)
    status = Column(_enum_column(ReservationStatus), default=ReservationStatus.CONFIRMED, nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)
    paid_amount = Column(Numeric(10, 2), nullable=False, default=0)
    notes = Column(Text)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    guest = relationship("Guest", back_populates="reservations")
    room = relationship("Room")

    # The PostgreSQL exclusion constraint against overlapping stays is added
    # in migrations.schema_migrations (it needs the btree_gist extension)
    __table_args__ = (
        CheckConstraint("check_out_date > check_in_date", name="ck_reservation_dates"),
        Index("idx_reservations_branch_status", "branch_id", "status"),
        Index("idx_reservations_room_dates", "room_id", "check_in_date", "check_out_date"),
    )

    def __repr__(self):
        return f"<Reservation {self.id} room={self.room_id} {self.check_in_date}->{self.check_out_date}>"


class MenuCategory(Base):
    __tablename__ = "menu_categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    branch_id = Column(Integer, ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True)
    active = Column(Boolean, default=True, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)


class MenuItem(Base):
    __tablename__ = "menu_items"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    price = Column(Numeric(10, 2), nullable=False)
    category_id = Column(Integer, ForeignKey("menu_categories.id", ondelete="CASCADE"), nullable=False, index=True)
    branch_id = Column(Integer, ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True)
    available = Column(Boolean, default=True, nullable=False)
    preparation_time = Column(Integer)  # minutes
    ingredients = Column(JSON, default=list)

    category = relationship("MenuCategory")


class RestaurantOrder(Base):
    __tablename__ = "restaurant_orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(40), unique=True, nullable=False)
    guest_id = Column(Integer, ForeignKey("guests.id", ondelete="SET NULL"), nullable=True)
    room_id = Column(Integer, ForeignKey("rooms.id", ondelete="SET NULL"), nullable=True)  # room service
    branch_id = Column(Integer, ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True)
    order_type = Column(_enum_column(OrderType), nullable=False)
    status = Column(_enum_column(OrderStatus), default=OrderStatus.PENDING, nullable=False)
    items = Column(JSON, nullable=False)  # [{item_id, name, quantity, price, notes}] - price at order time
    subtotal = Column(Numeric(10, 2), nullable=False)
    tax = Column(Numeric(10, 2), nullable=False)
    total = Column(Numeric(10, 2), nullable=False)
    notes = Column(Text)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class InventoryCategory(Base):
    __tablename__ = "inventory_categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    type = Column(_enum_column(InventoryCategoryType), nullable=False)
    branch_id = Column(Integer, ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True)


class InventoryItem(Base):
    __tablename__ = "inventory_items"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    category_id = Column(Integer, ForeignKey("inventory_categories.id", ondelete="CASCADE"), nullable=False, index=True)
    branch_id = Column(Integer, ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True)
    current_stock = Column(Integer, nullable=False, default=0)
    min_stock = Column(Integer, nullable=False, default=0)
    max_stock = Column(Integer, nullable=False, default=100)
    unit = Column(String(20), nullable=False)  # pieces, kg, liters
    cost_per_unit = Column(Numeric(10, 2))
    last_restocked = Column(DateTime)

    @property
    def stock_status(self) -> str:
        if self.current_stock == 0:
            return "out_of_stock"
        if self.current_stock <= self.min_stock:
            return "low_stock"
        if self.current_stock >= self.max_stock * 0.8:
            return "well_stocked"
        return "in_stock"


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    invoice_number = Column(String(40), unique=True, nullable=False)
    reservation_id = Column(Integer, ForeignKey("reservations.id", ondelete="SET NULL"), nullable=True, index=True)
    guest_id = Column(Integer, ForeignKey("guests.id", ondelete="RESTRICT"), nullable=False)
    branch_id = Column(Integer, ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True)
    items = Column(JSON, nullable=False)  # [{description, quantity, rate, amount}]
    subtotal = Column(Numeric(10, 2), nullable=False)
    tax = Column(Numeric(10, 2), nullable=False)
    total = Column(Numeric(10, 2), nullable=False)
    status = Column(_enum_column(InvoiceStatus), default=InvoiceStatus.PENDING, nullable=False)
    due_date = Column(Date, nullable=False)
    paid_date = Column(DateTime)
    payment_method = Column(_enum_column(PaymentMethod), nullable=True)
    notes = Column(Text)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    guest = relationship("Guest")
