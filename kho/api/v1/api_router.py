"""
Main API Router - Consolidates all module routes
"""

from fastapi import APIRouter
from kho.api.v1 import vouchers

api_router = APIRouter()

# Warehouse voucher routes (xuất nhập kho, duyệt phiếu)
api_router.include_router(vouchers.router, prefix="/vouchers", tags=["vouchers"])
