from fastapi import APIRouter

from app.api.v1 import audit, cases, health, validation, verifications

api_router = APIRouter()

api_router.include_router(health.router, prefix="/v1", tags=["health"])
api_router.include_router(verifications.router, prefix="/v1/verifications", tags=["verifications"])
api_router.include_router(cases.router, prefix="/v1/cases", tags=["cases"])
api_router.include_router(validation.router, prefix="/v1/validation", tags=["validation"])
api_router.include_router(audit.router, prefix="/v1/audit", tags=["audit"])
