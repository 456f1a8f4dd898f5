from fastapi import APIRouter
from otohub_billing.api.v1 import billing, superadmin

api_router = APIRouter()

api_router.include_router(billing.router, prefix="/billing", tags=["billing"])
api_router.include_router(superadmin.router, prefix="/superadmin", tags=["superadmin"])
