"""
FastAPI app
"""

from importlib.metadata import version

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gearshare.core import events

from .borrow_requests import borrow_app
from .dependencies import (
    DATABASE_MANAGER,
    SETTINGS,
    EventBusDependency,
    get_event_bus,
    logger,
)
from .errors import add_exception_handlers
from .events import events_app
from .groups import group_app
from .resources import resource_app
from .users import user_app

settings = SETTINGS()


async def log_change(event: events.ChangeEvent):
    await logger().adebug(
        "events.published", event=event.name, audience=sorted(event.audience)
    )


async def lifespan(app: FastAPI):
    app.settings = settings

    if settings.create_tables:
        await DATABASE_MANAGER.create_all()

    unsubscribe = get_event_bus().subscribe(events.ChangeEvent, log_change)

    yield

    unsubscribe()


app = FastAPI(
    lifespan=lifespan,
    title="GearShare API",
    summary="Lend and borrow gear within trusted groups of people.",
    version=version("gearshare"),
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app = add_exception_handlers(app)

app.include_router(user_app, prefix="/api")
app.include_router(resource_app, prefix="/api/resources")
app.include_router(group_app, prefix="/api/groups")
app.include_router(borrow_app, prefix="/api/borrow-requests")
app.include_router(events_app, prefix="/api")


@app.get("/api/health", tags=["Health"])
async def health(bus: EventBusDependency):
    return {"status": "ok", "event_subscribers": bus.subscriber_count()}
