from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from kas.api.v1.auth.router import router as auth_router
from kas.api.v1.statistics.router import router as statistics_router
from kas.api.v1.transactions.router import admin_router as admin_transactions_router
from kas.api.v1.transactions.router import router as transactions_router
from kas.api.v1.users.router import router as users_router
from kas.api.v1.weekly_payments.router import router as weekly_payments_router
from kas.core.config import settings
from kas.core.logging import setup_logging


def create_app() -> FastAPI:
    setup_logging(settings.log_level)
    app = FastAPI(title="Kas Kelas Backend")

    # CORS: allow the web frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(auth_router)
    app.include_router(transactions_router)
    app.include_router(admin_transactions_router)
    app.include_router(users_router)
    app.include_router(statistics_router)
    app.include_router(weekly_payments_router)

    return app


app = create_app()
