from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exception_handlers import http_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
import logging

from config import settings
from database import get_db, init_db, async_session_maker
from models import User, UserRole
from schemas import LoginRequest, Token, UserResponse
from errors import HotelError, AuthenticationError
from auth import authenticate_user, create_access_token, get_current_user, get_password_hash
from branches import router as branches_router, users_router
from rooms import router as rooms_router, room_types_router
from guests import router as guests_router
from reservations import router as reservations_router
from restaurant import router as restaurant_router
from inventory import router as inventory_router
from billing import router as billing_router
from dashboard import router as dashboard_router, reports_router

app = FastAPI(title=settings.APP_NAME, version="1.0.0")

logger = logging.getLogger(__name__)

# Strip whitespace from each origin to prevent configuration errors
CORS_ORIGINS = [origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=3600,  # Cache preflight responses for 1 hour
)

# ==================== CUSTOM EXCEPTION HANDLERS ====================


def _with_cors(request: Request, response):
    """Error responses raised from dependencies bypass the CORS middleware headers"""
    origin = request.headers.get("origin")
    if origin and origin in CORS_ORIGINS:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
    return response


@app.exception_handler(HotelError)
async def hotel_error_handler(request: Request, exc: HotelError):
    """Domain errors carry their own status code (400/401/403/404/409)"""
    if exc.status_code >= 500:
        logger.error(f"Domain error on {request.url.path}: {exc.message}")
    response = JSONResponse(status_code=exc.status_code, content=exc.to_dict())
    if isinstance(exc, AuthenticationError):
        response.headers["WWW-Authenticate"] = "Bearer"
    return _with_cors(request, response)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(p) for p in err.get("loc", ())[1:]), "message": err.get("msg")}
        for err in exc.errors()
    ]
    response = JSONResponse(
        status_code=400,
        content=jsonable_encoder({"detail": "Validation error", "errors": errors}),
    )
    return _with_cors(request, response)


@app.exception_handler(StarletteHTTPException)
async def custom_http_exception_handler(request: Request, exc: StarletteHTTPException):
    response = await http_exception_handler(request, exc)
    return _with_cors(request, response)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """
    Catch-all exception handler for unexpected errors.
    Logs the traceback, never leaks it to the client.
    """
    logger.error(f"Unexpected error: {exc}", exc_info=True)
    response = JSONResponse(status_code=500, content={"detail": "Internal server error"})
    return _with_cors(request, response)

# ==================== END EXCEPTION HANDLERS ====================

app.include_router(branches_router)
app.include_router(users_router)
app.include_router(room_types_router)
app.include_router(rooms_router)
app.include_router(guests_router)
app.include_router(reservations_router)
app.include_router(restaurant_router)
app.include_router(inventory_router)
app.include_router(billing_router)
app.include_router(dashboard_router)
app.include_router(reports_router)


async def bootstrap_super_admin(db: AsyncSession):
    """Create or refresh the environment-configured super admin"""
    result = await db.execute(select(User).where(User.email == settings.BOOTSTRAP_SUPER_ADMIN_EMAIL))
    admin = result.scalar_one_or_none()

    if admin:
        admin.hashed_password = get_password_hash(settings.BOOTSTRAP_SUPER_ADMIN_PASSWORD)
        admin.name = settings.BOOTSTRAP_SUPER_ADMIN_NAME
        admin.role = UserRole.SUPER_ADMIN
        admin.branch_id = None
        admin.active = True
        logger.info(f"Updated bootstrap admin: {settings.BOOTSTRAP_SUPER_ADMIN_EMAIL}")
    else:
        db.add(User(
            email=settings.BOOTSTRAP_SUPER_ADMIN_EMAIL,
            hashed_password=get_password_hash(settings.BOOTSTRAP_SUPER_ADMIN_PASSWORD),
            name=settings.BOOTSTRAP_SUPER_ADMIN_NAME,
            role=UserRole.SUPER_ADMIN,
            branch_id=None,
            active=True,
        ))
        logger.info(f"Created bootstrap admin: {settings.BOOTSTRAP_SUPER_ADMIN_EMAIL}")
    await db.commit()


@app.on_event("startup")
async def startup_event():
    """Initialize database on startup"""
    logger.info("=" * 60)
    logger.info("Starting application initialization...")
    logger.info("=" * 60)

    try:
        await init_db()
    except Exception as e:
        logger.error("=" * 60)
        logger.error(f"CRITICAL: Application startup failed: {e}")
        logger.error("=" * 60)
        raise

    async with async_session_maker() as db:
        if settings.BOOTSTRAP_SUPER_ADMIN_EMAIL and settings.BOOTSTRAP_SUPER_ADMIN_PASSWORD:
            await bootstrap_super_admin(db)

        if settings.SEED_DEMO_DATA:
            from seed_data import seed_demo_data
            await seed_demo_data(db)

    logger.info("Application startup complete")


@app.get("/")
async def root():
    return {"name": settings.APP_NAME, "status": "ok"}


# ==================== AUTH ====================

@app.post("/auth/login", response_model=Token)
async def login(
    login_data: LoginRequest,
    db: AsyncSession = Depends(get_db)
):
    """Exchange email and password for a bearer token"""
    user = await authenticate_user(db, login_data.email, login_data.password)
    if not user:
        raise AuthenticationError("Invalid credentials")
    if not user.active:
        raise AuthenticationError("Account is inactive")

    access_token = create_access_token(data={"sub": str(user.id)})
    logger.info(f"User {user.email} logged in")
    return Token(access_token=access_token, user=UserResponse.model_validate(user))


@app.get("/auth/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    return current_user
