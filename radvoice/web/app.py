"""FastAPI application: JSON API over per-session voice command engines."""

import base64
import binascii
import secrets
from contextlib import asynccontextmanager

from fastapi import FastAPI
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from radvoice.config import settings
from radvoice.web.sessions import SessionRegistry

registry = SessionRegistry()


@asynccontextmanager
async def lifespan(app: FastAPI):
    from radvoice.database import init_db
    init_db()
    yield
    registry.close_all()


app = FastAPI(title="RadVoice", docs_url=None, redoc_url=None, lifespan=lifespan)


# --- HTTP Basic Auth middleware (protects all routes) ---
class BasicAuthMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        auth = request.headers.get("authorization")
        if auth:
            try:
                scheme, credentials = auth.split(" ", 1)
                if scheme.lower() == "basic":
                    decoded = base64.b64decode(credentials).decode("utf-8")
                    username, password = decoded.split(":", 1)
                    if (
                        secrets.compare_digest(username, settings.web_username)
                        and secrets.compare_digest(password, settings.web_password)
                    ):
                        return await call_next(request)
            except (ValueError, binascii.Error, UnicodeDecodeError):
                pass  # malformed header, answered with 401 below

        return Response(
            content="Unauthorized",
            status_code=401,
            headers={"WWW-Authenticate": 'Basic realm="RadVoice"'},
        )


app.add_middleware(BasicAuthMiddleware)

# Import routes after the registry is defined to avoid circular import
from radvoice.web.routes import catalog, sessions  # noqa: E402

app.include_router(sessions.router)
app.include_router(catalog.router)
