# routes/__init__.py
from fastapi import APIRouter

import routes.health as health_routes
import routes.library as library_routes

api_router = APIRouter(prefix="/api")
api_router.include_router(health_routes.router)
api_router.include_router(library_routes.router)
