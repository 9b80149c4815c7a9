from fastapi import APIRouter

from app.api.v1.endpoints import contracts, events

api_router = APIRouter()
api_router.include_router(contracts.router, prefix="/contracts", tags=["contracts"])
api_router.include_router(events.router, prefix="/contract-events", tags=["contract-events"])
