"""
FastAPI application for the WooCommerce import admin API.

Provides REST endpoints for:
- Triggering and monitoring WooCommerce imports
- Viewing import history and dashboard statistics
- Browsing imported legacy orders

Run with:
    cd backend
    source venv/bin/activate
    uvicorn api.main:app --reload --port 8000
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from .routes import imports, legacy_orders
from .services.database import db_pool


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database connection on startup and close it on shutdown."""
    try:
        db_pool.initialize()
        print("Database connection initialized")
    except Exception as e:
        print(f"Warning: Could not initialize database: {e}")
        print("Some endpoints may not work without database connection")

    yield

    db_pool.close()
    print("Database connection closed")


app = FastAPI(
    title="WooCommerce Import API",
    description="Admin API for importing WooCommerce history into Supabase",
    version="1.0.0",
    lifespan=lifespan,
)

# Configure CORS for the admin frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",  # Vite dev server
        "http://localhost:5174",  # Vite fallback port
        "http://127.0.0.1:5173",
        "http://127.0.0.1:5174",
        "http://localhost:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(imports.router)
app.include_router(legacy_orders.router)


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: datetime
    database: str
    import_log: str


@app.get("/api/health", response_model=HealthResponse, tags=["health"])
def health_check():
    """Health status including database connectivity and the woo_import_log table."""
    db_status = "unknown"
    import_log = "unknown"

    try:
        with db_pool.get_cursor() as cursor:
            cursor.execute("SELECT to_regclass('public.woo_import_log') IS NOT NULL AS present")
            db_status = "connected"
            import_log = "present" if cursor.fetchone()["present"] else "missing"
    except Exception as e:
        db_status = f"error: {str(e)}"

    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc),
        database=db_status,
        import_log=import_log,
    )


@app.get("/", tags=["root"])
def root():
    return {
        "message": "WooCommerce Import API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }
