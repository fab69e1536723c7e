# storefront/main.py
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from storefront.api.routers import admin, carts, checkout, health, orders, payments
from storefront.data.database import Base, engine
from storefront.utils.logging import get_logger

# models must be registered on Base before create_all
import storefront.data.models  # noqa: F401

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Creating tables: {list(Base.metadata.tables.keys())}")
    Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    app = FastAPI(
        title="Storefront Orders",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.include_router(health.router)
    app.include_router(carts.router)
    app.include_router(checkout.router)
    app.include_router(payments.router)
    app.include_router(orders.router)
    app.include_router(admin.router)

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
