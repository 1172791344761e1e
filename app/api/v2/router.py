from fastapi import APIRouter
from app.api.v2 import inventory

api_router = APIRouter()

# Include all v2 routers
api_router.include_router(inventory.router, prefix="/inventory", tags=["inventory"])
