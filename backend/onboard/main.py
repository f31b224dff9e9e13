import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from onboard.config import settings
from onboard.middleware.exceptions import register_exception_handlers
from onboard.routers import community, health, step_types, user_wizards, wizards

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = FastAPI(
    title="Onboard",
    description="Community onboarding wizards: step progression and plan quotas",
    version="0.1.0",
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware ───────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(step_types.router, prefix="/api/step-types", tags=["step-types"])
app.include_router(wizards.router, prefix="/api/wizards", tags=["wizards"])
app.include_router(user_wizards.router, prefix="/api/user", tags=["user"])
app.include_router(community.router, prefix="/api/community", tags=["community"])
