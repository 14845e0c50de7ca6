"""
Shared fixtures.

`hotel` is a dict-backed store for the booking core; `client` is an httpx
client bound to the FastAPI app with get_db pointed at a private in-memory
SQLite database.
"""
from dataclasses import dataclass
from decimal import Decimal
from types import SimpleNamespace

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from access_policy import AuthenticatedContext
from auth import create_access_token, get_password_hash
from database import Base, get_db
from main import app
from memory_store import InMemoryStore
from models import Branch, User, UserRole, RoomType, Room, RoomStatus, Guest


# ==================== BOOKING CORE ====================

@pytest.fixture
def hotel():
    """Two branches; branch 1 has rooms 101, 102 (standard) and 103 (maintenance)"""
    store = InMemoryStore()
    downtown = store.add_branch("Downtown Hotel")
    airport = store.add_branch("Airport Hotel")
    standard = store.add_room_type(downtown.id, "Standard Room", "100.00", max_occupancy=2)
    airport_standard = store.add_room_type(airport.id, "Standard Room", "90.00", max_occupancy=2)

    return SimpleNamespace(
        store=store,
        downtown=downtown,
        airport=airport,
        standard=standard,
        room_101=store.add_room(downtown.id, standard.id, "101"),
        room_102=store.add_room(downtown.id, standard.id, "102"),
        room_103=store.add_room(downtown.id, standard.id, "103", status=RoomStatus.MAINTENANCE),
        room_a1=store.add_room(airport.id, airport_standard.id, "A1"),
        guest=store.add_guest("Ada", "Lovelace", "ada@example.com"),
        super_admin=AuthenticatedContext(user_id=1, role=UserRole.SUPER_ADMIN, branch_id=None),
        branch_admin=AuthenticatedContext(user_id=2, role=UserRole.BRANCH_ADMIN, branch_id=downtown.id),
        receptionist=AuthenticatedContext(user_id=3, role=UserRole.RECEPTIONIST, branch_id=downtown.id),
        airport_admin=AuthenticatedContext(user_id=4, role=UserRole.BRANCH_ADMIN, branch_id=airport.id),
    )


# ==================== HTTP ====================

@pytest_asyncio.fixture
async def session_maker():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@dataclass
class Seeded:
    downtown: Branch
    airport: Branch
    standard: RoomType
    deluxe: RoomType
    room_101: Room
    room_102: Room
    room_201: Room
    airport_room: Room
    guest: Guest
    users: dict

    def headers(self, role: str) -> dict:
        token = create_access_token(data={"sub": str(self.users[role].id)})
        return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def seeded(session_maker):
    password = get_password_hash("secret123")
    async with session_maker() as db:
        downtown = Branch(name="Downtown Hotel", address="123 Main St", active=True)
        airport = Branch(name="Airport Hotel", address="1 Runway Rd", active=True)
        db.add_all([downtown, airport])
        await db.flush()

        standard = RoomType(name="Standard Room", base_rate=Decimal("100.00"), max_occupancy=2,
                            amenities=["WiFi"], branch_id=downtown.id)
        deluxe = RoomType(name="Deluxe Room", base_rate=Decimal("150.00"), max_occupancy=4,
                          amenities=["WiFi", "Mini Bar"], branch_id=downtown.id)
        airport_type = RoomType(name="Standard Room", base_rate=Decimal("90.00"), max_occupancy=2,
                                amenities=[], branch_id=airport.id)
        db.add_all([standard, deluxe, airport_type])
        await db.flush()

        room_101 = Room(number="101", floor=1, room_type_id=standard.id, branch_id=downtown.id)
        room_102 = Room(number="102", floor=1, room_type_id=standard.id, branch_id=downtown.id)
        room_201 = Room(number="201", floor=2, room_type_id=deluxe.id, branch_id=downtown.id)
        airport_room = Room(number="A1", floor=1, room_type_id=airport_type.id, branch_id=airport.id)
        guest = Guest(first_name="Ada", last_name="Lovelace", email="ada@example.com",
                      phone="+15550100", total_stays=0)
        db.add_all([room_101, room_102, room_201, airport_room, guest])

        users = {
            "super_admin": User(email="root@hotelchain.com", name="Root", role=UserRole.SUPER_ADMIN),
            "branch_admin": User(email="downtown@hotelchain.com", name="Dana", role=UserRole.BRANCH_ADMIN,
                                 branch_id=downtown.id),
            "receptionist": User(email="reception@hotelchain.com", name="Rae", role=UserRole.RECEPTIONIST,
                                 branch_id=downtown.id),
            "restaurant_staff": User(email="kitchen@hotelchain.com", name="Kit", role=UserRole.RESTAURANT_STAFF,
                                     branch_id=downtown.id),
            "housekeeping": User(email="rooms@hotelchain.com", name="Hal", role=UserRole.HOUSEKEEPING,
                                 branch_id=downtown.id),
            "airport_admin": User(email="airport@hotelchain.com", name="Ari", role=UserRole.BRANCH_ADMIN,
                                  branch_id=airport.id),
        }
        for user in users.values():
            user.hashed_password = password
            user.active = True
        db.add_all(users.values())
        await db.commit()

        return Seeded(
            downtown=downtown, airport=airport, standard=standard, deluxe=deluxe,
            room_101=room_101, room_102=room_102, room_201=room_201, airport_room=airport_room,
            guest=guest, users=users,
        )


@pytest_asyncio.fixture
async def client(session_maker, seeded):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
