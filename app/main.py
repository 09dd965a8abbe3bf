import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import Session

from app.config import settings
from app.database import create_db_and_tables, engine, seed_admin_user
from app.routes import (
    admin,
    admin_payments,
    auth,
    health,
    movies,
    payments,
)

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Run DB creation ONLY in local
    if settings.env == "local":
        create_db_and_tables()
    with Session(engine) as session:
        seed_admin_user(session)
    yield

app = FastAPI(title="Movie Rental API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(movies.router, prefix="/movies", tags=["Movies"])
app.include_router(payments.router, prefix="/payments", tags=["Payments"])
app.include_router(admin_payments.router, prefix="/admin/payments", tags=["Admin Payments"])
app.include_router(admin.router, prefix="/admin", tags=["Admin Endpoints"])
app.include_router(health.router, prefix="/health", tags=["Health"])


@app.get("/")
def root():
    return {
        "message": "API is running!",
        "payment_endpoints": [
            "/payments/create-order", "/payments/verify",
            "/payments/validate-access", "/payments/my-purchases"
        ],
        "admin_endpoints": [
            "/admin/access", "/admin/access/{access_id}",
            "/admin/payments", "/admin/payments/{payment_id}/refund",
            "/admin/users"
        ],
        "movie_endpoints": [
            "/movies", "/movies/{movie_id}"
        ],
        "auth_endpoints": [
            "/auth/signup", "/auth/login", "/auth/refresh-token", "/auth/profile"
        ]
    }
