"""FastAPI application entry point."""
import logging
import os

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import OperationalError

from guestlist.config import settings
from guestlist.database import Base, engine
from guestlist.errors import GuestListError
from guestlist.logging_config import setup_logging
from guestlist.security import get_operator

# Import routers
from guestlist.routers import attendees, auth, checkin, events, links, reports, sectors, suppliers

# Import all models so Base.metadata knows about them
from guestlist.models.event import Event                              # noqa: F401
from guestlist.models.sector import Sector                            # noqa: F401
from guestlist.models.supplier import Supplier                        # noqa: F401
from guestlist.models.attendee import Attendee, WristbandAssignment   # noqa: F401
from guestlist.models.access_token import AccessToken                 # noqa: F401
from guestlist.models.status_change import StatusChange               # noqa: F401
from guestlist.models.access_record import AccessRecord               # noqa: F401

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Guest List",
    description="Event check-in and guest-list management: attendees, suppliers, wristbands and face matching",
    version="0.1.0",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(GuestListError)
async def guestlist_error_handler(request: Request, exc: GuestListError):
    """Business-rule rejections: the client shows these inline."""
    logger.info("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "kind": "rejected", "message": exc.message, "details": exc.details},
    )


@app.exception_handler(OperationalError)
async def store_unavailable_handler(request: Request, exc: OperationalError):
    """The store itself is unreachable: a connection problem, not a user error."""
    logger.error("%s %s failed, store unavailable: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={
            "error": "store_unavailable",
            "kind": "fatal",
            "message": "The database is unreachable, please try again shortly",
            "details": {},
        },
    )


# Stored photos
os.makedirs(settings.PHOTO_DIR, exist_ok=True)
app.mount(settings.PHOTO_URL_PREFIX, StaticFiles(directory=settings.PHOTO_DIR), name="photos")

# Register routers
organizer = [Depends(get_operator)]
app.include_router(auth.router, prefix="/api/auth", tags=["Auth"])
app.include_router(events.router, prefix="/api/events", tags=["Events"])
app.include_router(sectors.router, prefix="/api/events/{event_id}/sectors", tags=["Sectors"], dependencies=organizer)
app.include_router(suppliers.router, prefix="/api/events/{event_id}/suppliers", tags=["Suppliers"],
                   dependencies=organizer)
app.include_router(attendees.router, prefix="/api/events/{event_id}/attendees", tags=["Attendees"],
                   dependencies=organizer)
app.include_router(checkin.router, prefix="/api/events/{event_id}/fast-checkin", tags=["Check-in"],
                   dependencies=organizer)
app.include_router(reports.router, prefix="/api", tags=["Reports"], dependencies=organizer)
app.include_router(links.router, prefix="/api", tags=["Links"])


@app.on_event("startup")
def on_startup():
    """Create database tables on startup (for SQLite dev mode)."""
    if settings.DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)


@app.get("/api/health")
def health_check():
    return {"status": "ok"}
