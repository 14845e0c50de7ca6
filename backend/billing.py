"""
Invoices, plus the money helpers shared with restaurant orders.
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy import select
from typing import Iterable, List, Optional, Tuple
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
import secrets
import logging

from config import settings
from database import get_db
from models import Invoice, InvoiceStatus, Guest, Reservation, RoomType, Room, Permission
from schemas import InvoiceCreate, InvoiceUpdate, InvoiceResponse, InvoiceWithGuestResponse
from access_policy import AuthenticatedContext, resolve_scope, ensure_write_scope
from auth import require_permission
from reservation_service import calculate_nights
from timezone_utils import get_hotel_today
from errors import NotFoundError, ValidationError, ConflictError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["billing"])

CENTS = Decimal("0.01")


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def generate_number(prefix: str) -> str:
    """Human-readable document number, e.g. INV-20240201-3F9A1C"""
    return f"{prefix}-{datetime.utcnow():%Y%m%d}-{secrets.token_hex(3).upper()}"


def compute_totals(amounts: Iterable, tax_rate=None) -> Tuple[Decimal, Decimal, Decimal]:
    """(subtotal, tax, total) for line amounts at the configured tax rate"""
    subtotal = to_money(sum((Decimal(str(a)) for a in amounts), Decimal("0")))
    rate = Decimal(str(settings.TAX_RATE if tax_rate is None else tax_rate))
    tax = to_money(subtotal * rate)
    return subtotal, tax, subtotal + tax


def _line_items(items) -> List[dict]:
    lines = []
    for item in items:
        amount = to_money(item.amount if item.amount is not None else item.rate * item.quantity)
        lines.append({
            "description": item.description,
            "quantity": item.quantity,
            "rate": str(to_money(item.rate)),
            "amount": str(amount),
        })
    return lines


async def _get_invoice(db: AsyncSession, invoice_id: int) -> Invoice:
    result = await db.execute(select(Invoice).options(selectinload(Invoice.guest)).where(Invoice.id == invoice_id))
    invoice = result.scalar_one_or_none()
    if not invoice:
        raise NotFoundError("Invoice not found")
    return invoice


@router.get("/invoices", response_model=List[InvoiceWithGuestResponse])
async def list_invoices(
    branch_id: Optional[int] = Query(None, alias="branchId"),
    invoice_status: Optional[InvoiceStatus] = Query(None, alias="status"),
    ctx: AuthenticatedContext = Depends(require_permission(Permission.MANAGE_BILLING)),
    db: AsyncSession = Depends(get_db)
):
    scope = resolve_scope(ctx, branch_id)
    if scope is None:
        return []

    query = select(Invoice).options(selectinload(Invoice.guest)).where(Invoice.branch_id == scope)
    if invoice_status:
        query = query.where(Invoice.status == invoice_status)
    result = await db.execute(query.order_by(Invoice.created_at.desc()))
    return result.scalars().all()


@router.get("/invoices/{invoice_id}", response_model=InvoiceWithGuestResponse)
async def get_invoice(
    invoice_id: int,
    ctx: AuthenticatedContext = Depends(require_permission(Permission.MANAGE_BILLING)),
    db: AsyncSession = Depends(get_db)
):
    invoice = await _get_invoice(db, invoice_id)
    if not ctx.is_super_admin and invoice.branch_id != ctx.branch_id:
        raise NotFoundError("Invoice not found")
    return invoice


@router.post("/invoices", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
async def create_invoice(
    invoice_data: InvoiceCreate,
    ctx: AuthenticatedContext = Depends(require_permission(Permission.MANAGE_BILLING)),
    db: AsyncSession = Depends(get_db)
):
    branch_id = ensure_write_scope(ctx, invoice_data.branch_id)

    if not await db.get(Guest, invoice_data.guest_id):
        raise NotFoundError("Guest not found")
    if invoice_data.reservation_id is not None:
        reservation = await db.get(Reservation, invoice_data.reservation_id)
        if not reservation or reservation.branch_id != branch_id:
            raise NotFoundError("Reservation not found")
        if reservation.guest_id != invoice_data.guest_id:
            raise ValidationError.for_field("guestId", "Guest does not match the reservation")

    lines = _line_items(invoice_data.items)
    subtotal, tax, total = compute_totals(line["amount"] for line in lines)

    invoice = Invoice(
        invoice_number=generate_number("INV"),
        reservation_id=invoice_data.reservation_id,
        guest_id=invoice_data.guest_id,
        branch_id=branch_id,
        items=lines,
        subtotal=subtotal,
        tax=tax,
        total=total,
        status=InvoiceStatus.PENDING,
        due_date=invoice_data.due_date or get_hotel_today() + timedelta(days=settings.INVOICE_DUE_DAYS),
        notes=invoice_data.notes,
        created_by=ctx.user_id,
    )
    db.add(invoice)
    await db.commit()
    await db.refresh(invoice)
    logger.info(f"Invoice {invoice.invoice_number} created for guest {invoice.guest_id}, total {total}")
    return invoice


@router.put("/invoices/{invoice_id}", response_model=InvoiceResponse)
async def update_invoice(
    invoice_id: int,
    invoice_data: InvoiceUpdate,
    ctx: AuthenticatedContext = Depends(require_permission(Permission.MANAGE_BILLING)),
    db: AsyncSession = Depends(get_db)
):
    invoice = await _get_invoice(db, invoice_id)
    ensure_write_scope(ctx, invoice.branch_id)

    updates = invoice_data.model_dump(exclude_unset=True)
    new_status = updates.get("status")
    if invoice.status == InvoiceStatus.PAID and new_status not in (None, InvoiceStatus.PAID):
        raise ConflictError("A paid invoice cannot be reopened")

    for field, value in updates.items():
        setattr(invoice, field, value)
    if new_status == InvoiceStatus.PAID and invoice.paid_date is None:
        invoice.paid_date = datetime.utcnow()

    await db.commit()
    await db.refresh(invoice)
    return invoice


@router.post("/reservations/{reservation_id}/invoice", response_model=InvoiceResponse,
             status_code=status.HTTP_201_CREATED)
async def create_invoice_for_reservation(
    reservation_id: int,
    ctx: AuthenticatedContext = Depends(require_permission(Permission.MANAGE_BILLING)),
    db: AsyncSession = Depends(get_db)
):
    """Room charge invoice: one line of nights at the room type's base rate"""
    reservation = await db.get(Reservation, reservation_id)
    if not reservation:
        raise NotFoundError("Reservation not found")
    ensure_write_scope(ctx, reservation.branch_id)

    room = await db.get(Room, reservation.room_id)
    room_type = await db.get(RoomType, room.room_type_id)
    nights = calculate_nights(reservation.check_in_date, reservation.check_out_date)

    amount = to_money(reservation.total_amount)
    lines = [{
        "description": f"{room_type.name} room {room.number}, {nights} night{'s' if nights != 1 else ''}",
        "quantity": nights,
        "rate": str(to_money(room_type.base_rate)),
        "amount": str(amount),
    }]
    subtotal, tax, total = compute_totals([amount])

    invoice = Invoice(
        invoice_number=generate_number("INV"),
        reservation_id=reservation.id,
        guest_id=reservation.guest_id,
        branch_id=reservation.branch_id,
        items=lines,
        subtotal=subtotal,
        tax=tax,
        total=total,
        status=InvoiceStatus.PENDING,
        due_date=get_hotel_today() + timedelta(days=settings.INVOICE_DUE_DAYS),
        created_by=ctx.user_id,
    )
    db.add(invoice)
    await db.commit()
    await db.refresh(invoice)
    logger.info(f"Invoice {invoice.invoice_number} issued for reservation {reservation.id}")
    return invoice
