# demandes/main.py
import logging
import os
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from slowapi.errors import RateLimitExceeded

from demandes.api.errors import register_error_handlers
from demandes.api.router import api_router
from demandes.core.config import settings
from demandes.core.db import close_db
from demandes.core.indexes import startup_tasks
from demandes.core.rate_limit import limiter, rate_limit_handler

# ---- Logging ----
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

APP_NAME = os.getenv("APP_NAME", "Demandes Backend")
APP_VERSION = os.getenv("APP_VERSION", "0.1.0")

# --- CORS: .env + orígenes locales habituales ---
defaults = {
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
}
CORS_ORIGINS = sorted(set((settings.cors_origins or []) + list(defaults)))


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Índices en startup (idempotente)
    await startup_tasks()
    yield
    await close_db()


def create_app(run_startup: bool = True) -> FastAPI:
    app = FastAPI(title=APP_NAME, version=APP_VERSION, lifespan=lifespan if run_startup else None)

    # --- IMPORTANTE: CORS primero ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1024)

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    register_error_handlers(app)

    app.include_router(api_router)

    @app.get("/health")
    async def health():
        return {"ok": True}

    return app


app = create_app()

# Runner local opcional
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("demandes.main:app", reload=True, host="0.0.0.0", port=int(os.getenv("PORT", 8000)))
