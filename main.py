"""
Linkboard -- FastAPI Application

Run with:
    uvicorn main:create_app --factory
"""

import os
import uuid
import secrets
from contextlib import asynccontextmanager
from dotenv import load_dotenv
from fastapi import FastAPI, Request, HTTPException, Depends
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from fastapi.middleware.cors import CORSMiddleware

from dashboard_api import create_dashboard_router
from dashboard_routes import register_dashboard_routes
from db import close_pool, database_configured
from local_store import file_store_factory
from search import GlobalSearch
from supabase_client import get_supabase, get_table_client

load_dotenv()

LOCAL_STATE_DIR = os.getenv("LOCAL_STATE_DIR", ".linkboard-state")
DEVICE_COOKIE = "device_id"

# ============================================================
# Admin Authentication (HTTP Basic Auth)
# ============================================================

security = HTTPBasic()
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "")


def verify_admin(credentials: HTTPBasicCredentials = Depends(security)):
    """Verify admin credentials. Username can be anything, password must match ADMIN_PASSWORD."""
    if not ADMIN_PASSWORD:
        raise HTTPException(
            status_code=500,
            detail="ADMIN_PASSWORD not configured on server"
        )
    password_correct = secrets.compare_digest(credentials.password.encode("utf8"), ADMIN_PASSWORD.encode("utf8"))
    if not password_correct:
        raise HTTPException(
            status_code=401,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Basic"},
        )
    return credentials.username


# ============================================================
# App Factory
# ============================================================

def create_app(supabase=None, storage_client=None, store_factory=None) -> FastAPI:
    """Build the app. Collaborators default to the configured backend."""
    if supabase is None:
        supabase = get_table_client()
    if storage_client is None:
        storage_client = supabase if hasattr(supabase, "storage") else get_supabase()
    if store_factory is None:
        store_factory = file_store_factory(LOCAL_STATE_DIR)

    search = GlobalSearch(supabase)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        backend = "postgres" if getattr(supabase, "supports_transactions", False) else "supabase"
        print(f"[App] Ready. Tables via {backend}, device state in {LOCAL_STATE_DIR}")
        yield
        if database_configured():
            close_pool()
        print("[App] Shutdown")

    app = FastAPI(title="Linkboard", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Device Identity Middleware ---

    @app.middleware("http")
    async def device_identity_middleware(request: Request, call_next):
        device_id = request.cookies.get(DEVICE_COOKIE)
        new_device = not device_id
        if new_device:
            device_id = str(uuid.uuid4())

        request.state.device_id = device_id
        response = await call_next(request)

        if new_device:
            response.set_cookie(
                key=DEVICE_COOKIE,
                value=device_id,
                httponly=False,  # page scripts may read it
                samesite="lax",
                max_age=60 * 60 * 24 * 365,  # 1 year
            )
        return response

    app.include_router(create_dashboard_router(supabase, storage_client, store_factory, search, verify_admin))
    register_dashboard_routes(app, supabase, storage_client, store_factory, search, verify_admin)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


# ============================================================
# Main
# ============================================================

if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv('PORT', 8080))
    uvicorn.run(create_app(), host="0.0.0.0", port=port)
