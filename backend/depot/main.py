from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

import backend.depot.models.registry  # noqa: F401  (register every mapper)
from backend.depot.api.v1.api import api_router
from backend.depot.core.config import settings
from backend.depot.core.errors import register_exception_handlers
from backend.depot.core.logging_config import configure_logging
from backend.depot.middleware.rate_limit import RateLimitMiddleware
from backend.depot.middleware.request_id import RequestIDMiddleware
from backend.depot.middleware.security import SecurityHeadersMiddleware

configure_logging()

app = FastAPI(title="Depot API", docs_url="/api-docs")

# ─── CORS: configured origins only ──────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID"],
    expose_headers=["Content-Disposition", "X-Request-ID"],
)

# ─── Custom middleware (outermost executes first) ─────────────────────────────
app.add_middleware(GZipMiddleware, minimum_size=1024)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RateLimitMiddleware)
app.add_middleware(RequestIDMiddleware)

register_exception_handlers(app)

app.include_router(api_router)


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok"}
