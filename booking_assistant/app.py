"""FastAPI application: HTTP endpoints for the conversational booking assistant.

Endpoints:

  GET    /health                          Health check
  POST   /api/sessions                    Start a chat session (returns greeting)
  GET    /api/sessions/{id}               Session state, details and transcript
  POST   /api/sessions/{id}/messages      Send one user message
  POST   /api/sessions/{id}/review        Open the editable booking form
  POST   /api/sessions/{id}/submit        Validate and persist the booking
  POST   /api/sessions/{id}/reset         Start the conversation over
  DELETE /api/sessions/{id}               Drop the session
  POST   /api/auth/signup                 Email/password registration
  POST   /api/auth/signin                 Email/password sign-in
  POST   /api/auth/google                 Sign in with a Google ID token
  GET    /api/dashboard                   Signed-in user's approval flows

The chat model, booking store and identity provider are created once at
startup and shared by every session.
"""

from __future__ import annotations

# Load .env into os.environ early so SDK clients that read their own
# environment variables (GOOGLE_APPLICATION_CREDENTIALS, ...) see them.
from dotenv import load_dotenv
load_dotenv()

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Optional

# Configure root logger early so all app loggers have a handler and are
# visible when run via `uvicorn booking_assistant.app:app`.
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)-20s %(levelname)-7s %(message)s",
)

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from booking_assistant.auth import require_user
from booking_assistant.config import settings
from booking_assistant.dashboard import dashboard_payload, load_dashboard
from booking_assistant.identity.base import IdentityError, IdentityProvider, IdentityUser
from booking_assistant.pipeline import BookingPipeline, build_pipeline
from booking_assistant.session import (
    BookingSession,
    SessionBusyError,
    SessionStateError,
    get_session,
    register_session,
    unregister_session,
)
from booking_assistant.stores.base import BookingStoreError

log = logging.getLogger("booking_assistant.app")

_START_TIME = time.time()


class MessageBody(BaseModel):
    text: str


class SubmitBody(BaseModel):
    details: Optional[dict[str, Any]] = None


class CredentialsBody(BaseModel):
    email: str
    password: str


class GoogleSignInBody(BaseModel):
    id_token: str


def _user_payload(user: IdentityUser) -> dict[str, Any]:
    return {
        "uid": user.uid,
        "email": user.email,
        "display_name": user.display_name,
        "provider": user.provider,
        "id_token": user.id_token,
        "refresh_token": user.refresh_token,
    }


def _build_identity() -> IdentityProvider | None:
    if not settings.firebase_api_key:
        return None
    from booking_assistant.identity.firebase import FirebaseIdentityProvider

    return FirebaseIdentityProvider(settings.firebase_api_key)


def create_app(
    pipeline: BookingPipeline | None = None,
    identity: IdentityProvider | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    ``pipeline`` and ``identity`` are built from settings at startup when
    not supplied.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.pipeline is None:
            for warning in settings.validate_startup():
                log.warning(warning)
            app.state.pipeline = build_pipeline(settings)
        if app.state.identity is None:
            app.state.identity = _build_identity()
        log.info("Booking assistant ready")
        yield

    app = FastAPI(
        title="Room Booking Assistant",
        description="Conversational room booking with AI slot filling",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.pipeline = pipeline
    app.state.identity = identity

    def _session_or_404(session_id: str) -> BookingSession:
        session = get_session(session_id)
        if session is None:
            raise HTTPException(status_code=404, detail="Session not found")
        return session

    def _identity_or_403(request: Request) -> IdentityProvider:
        identity = request.app.state.identity
        if identity is None:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Sign-in is not configured. Set FIREBASE_API_KEY in .env.",
            )
        return identity.fork()

    def _identity_http_error(e: IdentityError) -> HTTPException:
        if e.is_credential_error:
            return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=e.code)
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Identity provider unavailable.",
        )

    # ── Health check ───────────────────────────────────────────

    @app.get("/health")
    async def health() -> JSONResponse:
        """Lightweight health check: confirms the event loop is responsive."""
        uptime = round(time.time() - _START_TIME, 1)
        return JSONResponse({"status": "ok", "uptime": uptime})

    # ── Chat sessions ──────────────────────────────────────────

    @app.post("/api/sessions")
    async def create_session(request: Request) -> JSONResponse:
        session = BookingSession(request.app.state.pipeline)
        session_id = register_session(session)
        greeting = session.greeting()
        return JSONResponse({
            "session_id": session_id,
            "message": greeting,
            "state": session.state.value,
        }, status_code=201)

    @app.get("/api/sessions/{session_id}")
    async def get_session_state(session_id: str) -> JSONResponse:
        session = _session_or_404(session_id)
        return JSONResponse(session.to_dict(detail=True))

    @app.post("/api/sessions/{session_id}/messages")
    async def post_message(session_id: str, body: MessageBody) -> JSONResponse:
        session = _session_or_404(session_id)
        try:
            turn = await session.handle_message(body.text)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        except (SessionBusyError, SessionStateError) as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        return JSONResponse(turn.model_dump(by_alias=True, mode="json"))

    @app.post("/api/sessions/{session_id}/review")
    async def start_review(session_id: str) -> JSONResponse:
        session = _session_or_404(session_id)
        try:
            details = session.start_review()
        except (SessionBusyError, SessionStateError) as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        return JSONResponse({"details": details, "state": session.state.value})

    @app.post("/api/sessions/{session_id}/submit")
    async def submit_booking(session_id: str, body: SubmitBody) -> JSONResponse:
        session = _session_or_404(session_id)
        try:
            result = await session.submit(body.details)
        except (SessionBusyError, SessionStateError) as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        return JSONResponse(result.model_dump(by_alias=True, mode="json"))

    @app.post("/api/sessions/{session_id}/reset")
    async def reset_session(session_id: str) -> JSONResponse:
        session = _session_or_404(session_id)
        try:
            greeting = session.reset()
        except SessionBusyError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        return JSONResponse({"message": greeting, "state": session.state.value})

    @app.delete("/api/sessions/{session_id}")
    async def delete_session(session_id: str) -> JSONResponse:
        _session_or_404(session_id)
        unregister_session(session_id)
        return JSONResponse({"deleted": session_id})

    # ── Authentication ─────────────────────────────────────────

    @app.post("/api/auth/signup")
    async def sign_up(request: Request, body: CredentialsBody) -> JSONResponse:
        identity = _identity_or_403(request)
        try:
            user = await identity.sign_up(body.email, body.password)
        except IdentityError as e:
            raise _identity_http_error(e) from e
        return JSONResponse(_user_payload(user), status_code=201)

    @app.post("/api/auth/signin")
    async def sign_in(request: Request, body: CredentialsBody) -> JSONResponse:
        identity = _identity_or_403(request)
        try:
            user = await identity.sign_in(body.email, body.password)
        except IdentityError as e:
            raise _identity_http_error(e) from e
        return JSONResponse(_user_payload(user))

    @app.post("/api/auth/google")
    async def sign_in_google(request: Request, body: GoogleSignInBody) -> JSONResponse:
        identity = _identity_or_403(request)
        try:
            user = await identity.sign_in_with_google(body.id_token)
        except IdentityError as e:
            raise _identity_http_error(e) from e
        return JSONResponse(_user_payload(user))

    # ── Dashboard ──────────────────────────────────────────────

    @app.get("/api/dashboard")
    async def dashboard(
        request: Request, user: IdentityUser = Depends(require_user),
    ) -> JSONResponse:
        try:
            flows = await load_dashboard(request.app.state.pipeline.store, user.email)
        except BookingStoreError as e:
            log.error("Dashboard load failed: %s", e)
            return JSONResponse({"error": str(e)}, status_code=503)
        return JSONResponse(dashboard_payload(user.email, flows))

    return app


# ── Module-level app instance for uvicorn ──────────────────────

app = create_app()


if __name__ == "__main__":
    import uvicorn

    log_config = uvicorn.config.LOGGING_CONFIG
    log_config["formatters"]["default"]["fmt"] = (
        "%(asctime)s %(name)-12s %(levelname)-8s %(message)s"
    )

    uvicorn.run(
        "booking_assistant.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_config=log_config,
    )
