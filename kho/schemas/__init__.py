"""
Kho Pydantic Schemas
Request/Response models for the warehouse voucher API
"""

# Import all schemas to make them available
from .common import ErrorResponse, SuccessResponse
from .voucher import (
    VoucherKind, VoucherStatus, ApprovalTab, ApprovalAction, Actor,
    VoucherBase, Voucher, VoucherLine, VoucherTotals, VoucherWithLines, VoucherStats,
    VoucherFilter, VoucherCreate, VoucherUpdate, ApprovalRequest, BulkCodesRequest,
    VoucherImportRequest, VoucherListResponse
)

__all__ = [
    "ErrorResponse", "SuccessResponse",
    "VoucherKind", "VoucherStatus", "ApprovalTab", "ApprovalAction", "Actor",
    "VoucherBase", "Voucher", "VoucherLine", "VoucherTotals", "VoucherWithLines", "VoucherStats",
    "VoucherFilter", "VoucherCreate", "VoucherUpdate", "ApprovalRequest", "BulkCodesRequest",
    "VoucherImportRequest", "VoucherListResponse",
]
