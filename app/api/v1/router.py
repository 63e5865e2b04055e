from fastapi import APIRouter

from app.api.v1.matching import router as matching_router
from app.api.v1.premium import router as premium_router
from app.api.v1.posts import router as posts_router
from app.api.v1.adventures import router as adventures_router
from app.api.v1.chat import router as chat_router

api_router = APIRouter()

# Include all route modules
api_router.include_router(matching_router)
api_router.include_router(premium_router)
api_router.include_router(posts_router)
api_router.include_router(adventures_router)
api_router.include_router(chat_router)
