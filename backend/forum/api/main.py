from fastapi import APIRouter

from forum.api.routes import (
    comments,
    discussions,
    login,
    posts,
    prompts,
    specialties,
    stats,
    users,
)

api_router = APIRouter()
api_router.include_router(login.router)
api_router.include_router(prompts.router)
api_router.include_router(comments.router)
api_router.include_router(discussions.router)
api_router.include_router(posts.router)
api_router.include_router(specialties.router)
api_router.include_router(users.router)
api_router.include_router(stats.router)
