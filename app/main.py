import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core import config
from app.core.logging_config import setup_logging

# ✅ Import All API Routes
from app.api.routes import billing_webhook, chat, history, subscription, system, usage


# ============================================
# ✅ LOGGING
# ============================================

setup_logging(log_level=config.LOG_LEVEL, log_dir=config.LOG_DIR)
logger = logging.getLogger(__name__)


# ============================================
# ✅ FASTAPI APP INIT
# ============================================

app = FastAPI(title="Infox Chat API")

# ✅ CORS: only the configured frontends
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Authorization", "Content-Type"],
    expose_headers=["X-Stream-Id", "X-Chat-Id"],
)


# ============================================
# ✅ DATABASE
# ============================================

@app.on_event("startup")
def prepare_database():
    if config.RUN_MIGRATIONS:
        from app.db.migrate import run_migrations
        run_migrations()
    else:
        from app.db.init_db import init_db
        init_db()
    logger.info("Database ready")


# ============================================
# ✅ REGISTER ALL ROUTERS
# ============================================

app.include_router(chat.router)
app.include_router(usage.router)
app.include_router(history.router)
app.include_router(subscription.router)
app.include_router(billing_webhook.router)
app.include_router(system.router)


# ============================================
# ✅ HEALTH CHECK ROOT ENDPOINT
# ============================================

@app.get("/")
def root():
    return {"status": "Infox Chat API running"}
