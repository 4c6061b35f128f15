from contextlib import asynccontextmanager
import logging
import os
import time

from fastapi import Depends, FastAPI, Request, Response, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.routing import APIRoute
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.orm import Session

from . import pubsub
from .auth import get_current_user, user_from_token
from .database import Base, get_db, storage
from .errors import LabkeeperError, register_error_handlers
from .immutability import register_immutability_listeners
from .permissions import LAB_MEMBER, seed_reference_roles
from .rbac import evaluate
from .routes import audit, auth, catalog, lab_admissions, lab_inventory, lab_members, labs

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

dsn = os.getenv("SENTRY_DSN")
if dsn:
    sentry_sdk.init(dsn=dsn, integrations=[FastApiIntegration()])

REQUEST_COUNT = Counter("request_count", "Total requests", ["method", "endpoint"])
REQUEST_LATENCY = Histogram(
    "request_latency_seconds", "Request latency", ["endpoint"]
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=storage.engine)
    db = storage.session()
    try:
        seed_reference_roles(db)
    finally:
        db.close()
    logger.info("labkeeper ready")
    yield


register_immutability_listeners()

app = FastAPI(title="labkeeper API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.limiter = auth.limiter
app.add_exception_handler(RateLimitExceeded, lambda r, e: Response("Too Many Requests", status_code=429))
if os.getenv("TESTING") != "1":
    app.add_middleware(SlowAPIMiddleware)

register_error_handlers(app)


@app.middleware("http")
async def record_metrics(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    route = request.scope.get("route")
    endpoint = route.path if route is not None else request.url.path
    REQUEST_COUNT.labels(request.method, endpoint).inc()
    REQUEST_LATENCY.labels(endpoint).observe(time.time() - start)
    return response


@app.get("/metrics")
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(auth.router)
app.include_router(labs.router)
app.include_router(catalog.router)
app.include_router(lab_inventory.admin_router)
app.include_router(lab_inventory.router)
app.include_router(lab_members.router)
app.include_router(lab_admissions.router)
app.include_router(lab_admissions.admin_router)
app.include_router(audit.admin_router)
app.include_router(audit.router)


def _depends_on(dependant, target) -> bool:
    for dep in dependant.dependencies:
        if dep.call is target or _depends_on(dep, target):
            return True
    return False


def audit_routes():
    public_paths = {
        "/api/auth/login",
        "/api/auth/register",
        "/metrics",
    }
    for route in app.routes:
        if isinstance(route, APIRoute) and route.path.startswith("/api") and route.path not in public_paths:
            if not _depends_on(route.dependant, get_current_user):
                raise RuntimeError(f"Route {route.path} missing authentication")


audit_routes()


@app.websocket("/ws/labs/{lab_id}")
async def lab_events(
    websocket: WebSocket,
    lab_id: int,
    token: str = "",
    db: Session = Depends(get_db),
):
    try:
        user = user_from_token(db, token)
        evaluate(db, user.id, lab_id, minimum_lab_level=LAB_MEMBER).require()
    except LabkeeperError as exc:
        await websocket.close(code=4000 + exc.status_code, reason=exc.detail)
        return

    await websocket.accept()
    async for data in pubsub.iter_lab_events(lab_id):
        await websocket.send_text(data)
