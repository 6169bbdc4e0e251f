from fastapi import APIRouter

from autoflow.ai.router import router as ai_router
from autoflow.credentials.router import router as credentials_router
from autoflow.workflows.router import router as workflows_router

api_router = APIRouter()
api_router.include_router(credentials_router, prefix="/credentials", tags=["credentials"])
api_router.include_router(workflows_router, prefix="/workflows", tags=["workflows"])
api_router.include_router(ai_router, prefix="/chat", tags=["chat"])
