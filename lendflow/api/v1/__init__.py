from fastapi import APIRouter

from lendflow.api.v1.routers import auth, health, kyc, loans

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(auth.router)
api_router.include_router(kyc.router)
api_router.include_router(loans.router)

__all__ = ["api_router"]
