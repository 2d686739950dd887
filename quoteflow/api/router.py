"""
Top-level API router.
Combines all sub-routers into a single router.
"""

from fastapi import APIRouter

from quoteflow.api.groups import router as groups_router
from quoteflow.api.health import router as health_router
from quoteflow.api.pricing import router as pricing_router
from quoteflow.api.quotes import router as quotes_router
from quoteflow.api.reviews import router as reviews_router

api_router = APIRouter()

api_router.include_router(health_router)
api_router.include_router(pricing_router)
api_router.include_router(groups_router)
api_router.include_router(quotes_router)
api_router.include_router(reviews_router)
