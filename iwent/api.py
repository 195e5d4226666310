"""FastAPI application for iwent."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError, version as pkg_version
from pathlib import Path
import tomllib

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from . import crud, database, dispatcher
from .classifier import classify, classify_incoming, classify_outgoing
from .config import settings
from .inbox import build_feed, event_notifications, to_notification_item, unread_count
from .participants import is_full, role, user_relationship, user_request_status
from .scheduler import start_scheduler, stop_scheduler
from .storage import init_db
from .temporal import display_datetime, format_recurrence, is_upcoming
from .utils import utcnow

# Use uvicorn's error logger so messages get the level prefix in the default log
# format.
logger = logging.getLogger("uvicorn.error")

ERROR_STATUS_CODES: dict[type[Exception], int] = {
    crud.RequestNotFound: 404,
    crud.NotificationNotFound: 404,
    crud.RequestAlreadyResolved: 409,
    crud.NotRequestAddressee: 403,
    crud.EventFullError: 409,
    crud.InvalidRequest: 400,
    dispatcher.InvalidTransition: 409,
}


def _load_app_version() -> str:
    """Return the current package version, falling back to pyproject for dev runs."""
    try:
        return pkg_version("iwent")
    except PackageNotFoundError:
        pyproject_path = Path(__file__).resolve().parent.parent / "pyproject.toml"
        if pyproject_path.exists():
            data = tomllib.loads(pyproject_path.read_text())
            project = data.get("project") or {}
            return str(project.get("version") or "dev")
    return "dev"


APP_VERSION = _load_app_version()


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_db()
    if settings.enable_scheduler:
        start_scheduler()
    try:
        yield
    finally:
        stop_scheduler()


app = FastAPI(title="iwent", version=APP_VERSION, lifespan=lifespan)


def get_db():
    db = database.SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_current_user_id(
    x_user_id: str | None = Header(None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> str:
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    if crud.get_user_data(db, user_id) is None:
        raise HTTPException(status_code=401, detail="Unknown user")
    return user_id


class InvitePayload(BaseModel):
    user_id: str = Field(..., min_length=1)


async def store_error_handler(request: Request, exc: Exception):
    status = next(
        code for error_type, code in ERROR_STATUS_CODES.items() if isinstance(exc, error_type)
    )
    logger.info(
        "%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc
    )
    return JSONResponse(
        {"error": type(exc).__name__, "detail": str(exc)}, status_code=status
    )


for _error_type in ERROR_STATUS_CODES:
    app.add_exception_handler(_error_type, store_error_handler)


@app.exception_handler(OperationalError)
async def operational_error_handler(request: Request, exc: OperationalError):
    raw = str(exc.orig) if getattr(exc, "orig", None) else str(exc)
    if "database is locked" in raw.lower():
        logger.error(
            "SQLite database is locked while handling %s %s",
            request.method,
            request.url.path,
        )
        return JSONResponse(
            {"detail": "The database is busy at the moment. Please try again."},
            status_code=503,
        )
    logger.error(
        "Operational database error on %s %s: %s", request.method, request.url.path, raw
    )
    return JSONResponse({"detail": "We hit a database issue. Please try again."}, status_code=500)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse({"detail": exc.errors()}, status_code=422)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Gracefully handle unexpected errors."""
    logger.exception(
        "Unhandled error while processing %s %s", request.method, request.url.path
    )
    return JSONResponse({"detail": "Internal server error"}, status_code=500)


def _dump(items) -> list[dict]:
    return [item.model_dump(mode="json") for item in items]


def _ensure_event(db: Session, event_id: str):
    event = crud.find_event(db, event_id)
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


@app.get("/healthz")
def healthz():
    return {"status": "ok", "version": APP_VERSION}


# -------- Inbox --------


@app.get("/api/v1/inbox")
def api_inbox(
    interleave: bool = Query(False),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    now = utcnow()
    snapshot = crud.load_snapshot(db, user_id)
    views = classify(snapshot, user_id, now=now)
    feed = build_feed(
        snapshot.notifications, views.incoming.included, interleave=interleave, now=now
    )
    return {
        "feed": _dump(feed),
        "outgoing": _dump(views.outgoing.included),
        "unread_count": unread_count(event_notifications(snapshot.notifications)),
    }


@app.get("/api/v1/requests/incoming")
def api_incoming_requests(
    debug: bool = Query(False),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    result = classify_incoming(crud.load_snapshot(db, user_id), user_id)
    payload = {"requests": _dump(result.included)}
    if debug:
        payload["excluded"] = _dump(result.excluded)
    return payload


@app.get("/api/v1/requests/outgoing")
def api_outgoing_requests(
    debug: bool = Query(False),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    result = classify_outgoing(crud.load_snapshot(db, user_id), user_id)
    payload = {"requests": _dump(result.included)}
    if debug:
        payload["excluded"] = _dump(result.excluded)
    return payload


@app.post("/api/v1/requests/{request_id}/accept")
def api_accept_request(
    request_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return dispatcher.accept(db, user_id, request_id).model_dump(mode="json")


@app.post("/api/v1/requests/{request_id}/decline")
def api_decline_request(
    request_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return dispatcher.decline(db, user_id, request_id).model_dump(mode="json")


@app.post("/api/v1/invites/{invite_id}/confirm")
def api_confirm_invite(
    invite_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return dispatcher.confirm(db, user_id, invite_id).model_dump(mode="json")


# -------- Events --------


@app.get("/api/v1/events/{event_id}/role")
def api_event_role(
    event_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    event = _ensure_event(db, event_id)
    now = utcnow()
    snapshot = crud.load_snapshot(db, user_id)
    return {
        "event_id": event.id,
        "role": role(event, user_id, snapshot, now=now),
        "request_status": user_request_status(event, user_id, snapshot),
        "relationship": user_relationship(event, user_id, snapshot),
        "is_upcoming": is_upcoming(event, now=now),
        "is_full": is_full(event, snapshot),
        "starts_at": display_datetime(event, now=now).isoformat(),
        "recurrence": format_recurrence(event, now=now),
    }


@app.post("/api/v1/events/{event_id}/join", status_code=201)
def api_join_event(
    event_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    request = crud.send_join_request(db, event_id=event_id, user_id=user_id)
    return {"request_id": request.id, "status": request.status}


@app.delete("/api/v1/events/{event_id}/join", status_code=204)
def api_cancel_join(
    event_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    crud.cancel_event_request(db, event_id=event_id, user_id=user_id)
    return Response(status_code=204)


@app.delete("/api/v1/events/{event_id}/participation", status_code=204)
def api_leave_event(
    event_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    crud.cancel_participation(db, event_id=event_id, user_id=user_id)
    return Response(status_code=204)


@app.post("/api/v1/events/{event_id}/invites", status_code=201)
def api_invite(
    event_id: str,
    payload: InvitePayload,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    request = crud.send_invite(
        db, event_id=event_id, from_user_id=user_id, to_user_id=payload.user_id
    )
    return {"request_id": request.id, "status": request.status}


@app.post("/api/v1/friends/{friend_id}/request", status_code=201)
def api_friend_request(
    friend_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    request = crud.send_friend_request(db, from_user_id=user_id, to_user_id=friend_id)
    return {"request_id": request.id, "status": request.status}


# -------- Notifications --------


@app.get("/api/v1/notifications")
def api_notifications(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    notifications = crud.list_notifications(db, user_id)
    return {
        "notifications": _dump(to_notification_item(n) for n in notifications),
        "unread_count": unread_count(notifications),
    }


@app.post("/api/v1/notifications/read-all")
def api_mark_all_read(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return {"updated": crud.mark_all_read(db, user_id)}


@app.post("/api/v1/notifications/{notification_id}/read")
def api_mark_read(
    notification_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    notification = crud.mark_read(db, notification_id, user_id=user_id)
    return to_notification_item(notification).model_dump(mode="json")


@app.delete("/api/v1/notifications/{notification_id}", status_code=204)
def api_delete_notification(
    notification_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    crud.delete_notification(db, notification_id, user_id=user_id)
    return Response(status_code=204)
