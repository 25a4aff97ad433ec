"""
Mastodon auth gateway.
Unauthenticated: /auth/login, /auth/callback, /.well-known/jwks.json, /health.
Bearer session token: /auth/verify, /api/myLists, /api/accountsInList/{list_id}, /api/instanceInfo.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from mastobridge.callback import router as callback_router
from mastobridge.database import SessionLocal, init_db
from mastobridge.errors import install_error_handlers
from mastobridge.instance_info import router as instance_info_router
from mastobridge.lists import router as lists_router
from mastobridge.login import router as login_router
from mastobridge.seed import seed_from_env
from mastobridge.store import SqlCredentialStore
from mastobridge.verify import router as verify_router
from mastobridge.well_known import router as well_known_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and seed config scalars from env on startup."""
    init_db()
    db = SessionLocal()
    try:
        seed_from_env(SqlCredentialStore(db))
    finally:
        db.close()
    yield


app = FastAPI(title="mastobridge", version="0.1.0", lifespan=lifespan)
install_error_handlers(app)
app.include_router(login_router, tags=["auth"])
app.include_router(callback_router, tags=["auth"])
app.include_router(verify_router, tags=["auth"])
app.include_router(lists_router, tags=["api"])
app.include_router(instance_info_router, tags=["api"])
app.include_router(well_known_router, tags=["well-known"])


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "mastobridge"}


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    uvicorn.run(
        "mastobridge.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
