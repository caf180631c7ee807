from fastapi import APIRouter
from partipay.api.v1.endpoints import banks, bills, realtime, sessions

api_router = APIRouter()

api_router.include_router(bills.router, prefix="/bills", tags=["bills"])
api_router.include_router(sessions.router, prefix="/sessions", tags=["sessions"])
api_router.include_router(banks.router, prefix="/banks", tags=["banks"])
api_router.include_router(realtime.router, tags=["realtime"])
