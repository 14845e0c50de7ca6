"""
Idempotent demo data for a fresh database.

Creates one branch with its staff accounts, three room types and a small set
of rooms. Runs at startup when SEED_DEMO_DATA is set, or manually:

    python seed_data.py
"""
import asyncio
import logging
from decimal import Decimal
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from models import Branch, User, UserRole, RoomType, Room, RoomStatus
from auth import get_password_hash

logger = logging.getLogger(__name__)

DEMO_BRANCH = {
    "name": "Downtown Hotel",
    "address": "123 Main St",
    "phone": "+1234567890",
    "email": "downtown@hotelchain.com",
}

DEMO_USERS = [
    # super admin has no home branch and picks one per request
    ("admin@hotelchain.com", "admin123", "Super Admin", UserRole.SUPER_ADMIN),
    ("downtown@hotelchain.com", "branch123", "Branch Admin", UserRole.BRANCH_ADMIN),
    ("reception@hotelchain.com", "reception123", "Reception Staff", UserRole.RECEPTIONIST),
]

DEMO_ROOM_TYPES = [
    {
        "name": "Standard Room",
        "description": "Comfortable standard room with basic amenities",
        "base_rate": Decimal("100.00"),
        "max_occupancy": 2,
        "amenities": ["WiFi", "TV", "AC"],
        "rooms": ["101", "102", "103", "104"],
    },
    {
        "name": "Deluxe Room",
        "description": "Spacious deluxe room with premium amenities",
        "base_rate": Decimal("150.00"),
        "max_occupancy": 4,
        "amenities": ["WiFi", "TV", "AC", "Mini Bar", "Room Service"],
        "rooms": ["201", "202", "203"],
    },
    {
        "name": "Executive Suite",
        "description": "Luxury executive suite with all premium amenities",
        "base_rate": Decimal("250.00"),
        "max_occupancy": 6,
        "amenities": ["WiFi", "TV", "AC", "Mini Bar", "Room Service", "Kitchenette", "Balcony"],
        "rooms": ["301", "302"],
    },
]


async def is_database_empty(db: AsyncSession) -> bool:
    """Seed only when no branch has been created yet"""
    result = await db.execute(select(func.count(Branch.id)))
    return (result.scalar() or 0) == 0


async def seed_demo_data(db: AsyncSession) -> bool:
    """
    Populate the demo branch. Returns False without touching anything if the
    database already holds branches.
    """
    if not await is_database_empty(db):
        logger.info("ℹ️ Database already has branches, skipping demo seed")
        return False

    branch = Branch(**DEMO_BRANCH, active=True)
    db.add(branch)
    await db.flush()

    for email, password, name, role in DEMO_USERS:
        existing = await db.execute(select(User).where(User.email == email))
        if existing.scalar_one_or_none():
            continue
        db.add(User(
            email=email,
            hashed_password=get_password_hash(password),
            name=name,
            role=role,
            branch_id=None if role == UserRole.SUPER_ADMIN else branch.id,
            active=True,
        ))

    room_count = 0
    for room_type_data in DEMO_ROOM_TYPES:
        numbers = room_type_data["rooms"]
        room_type = RoomType(
            branch_id=branch.id,
            **{key: value for key, value in room_type_data.items() if key != "rooms"},
        )
        db.add(room_type)
        await db.flush()

        for number in numbers:
            db.add(Room(
                number=number,
                floor=int(number[0]),
                room_type_id=room_type.id,
                branch_id=branch.id,
                status=RoomStatus.AVAILABLE,
            ))
            room_count += 1

    await db.commit()
    logger.info(
        f"✅ Seeded demo branch '{branch.name}' with {len(DEMO_USERS)} users, "
        f"{len(DEMO_ROOM_TYPES)} room types and {room_count} rooms"
    )
    return True


async def main():
    from database import async_session_maker, init_db

    await init_db()
    async with async_session_maker() as session:
        await seed_demo_data(session)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
