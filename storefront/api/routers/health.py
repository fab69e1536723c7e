# storefront/api/routers/health.py
from fastapi import APIRouter

from storefront.utils.settings import ENVIRONMENT, STORE_BACKEND

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    return {"status": "ok", "environment": ENVIRONMENT, "stores": STORE_BACKEND}
