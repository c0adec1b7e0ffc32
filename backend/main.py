import asyncio
import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from backend.app.ledger.repository import PostgresDocumentStore
from backend.app.routes.admin import router as admin_router
from backend.app.routes.auth import get_current_user, get_optional_current_user
from backend.app.routes.auth import router as auth_router
from backend.app.routes.checkout import router as checkout_router
from backend.app.routes.entitlements import router as entitlements_router
from backend.app.services.subscriptions import (
    get_checkout_registry,
    get_document_store,
    get_ledger,
    get_payment_client,
    get_settings,
    run_ledger_sync,
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("ledger_sync")

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]

app = FastAPI(title="Streaming Subscriptions API")

# Vite proxy origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(entitlements_router)
app.include_router(checkout_router)
app.include_router(admin_router)


@app.on_event("startup")
async def start_ledger_sync() -> None:
    settings = get_settings()
    stop = asyncio.Event()
    app.state.ledger_sync_stop = stop
    app.state.ledger_sync_task = asyncio.create_task(
        run_ledger_sync(
            get_ledger(),
            get_document_store(),
            interval=settings.ledger_sweep_interval,
            stop=stop,
        )
    )
    logger.info("Ledger sync started (backend=%s)", settings.ledger_backend)


@app.on_event("shutdown")
async def stop_ledger_sync() -> None:
    stop = getattr(app.state, "ledger_sync_stop", None)
    task = getattr(app.state, "ledger_sync_task", None)

    if stop:
        stop.set()
    if task:
        try:
            await asyncio.wait_for(task, timeout=5)
        except asyncio.TimeoutError:
            logger.warning("Ledger sync did not stop in time; cancelling")
            task.cancel()

    await get_checkout_registry().shutdown()
    await get_payment_client().close()
    get_ledger().stop()
    store = get_document_store()
    if isinstance(store, PostgresDocumentStore):
        store.close()


@app.get("/api/healthz")
def healthz():
    return {"ok": True}


__all__ = ["app", "get_current_user", "get_optional_current_user"]
