"""
Kho Common Schemas
Shared Pydantic models for common API structures
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Optional


class ErrorResponse(BaseModel):
    """
    Standard error response model

    Used for all API error responses
    """
    error: str = Field(..., description="Error type or category")
    message: str = Field(..., description="Human-readable error message")
    detail: Optional[str] = Field(None, description="Additional error details")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "error": "voucher_state_error",
            "message": "Chỉ có thể sửa phiếu chưa duyệt!",
            "detail": "Voucher NXT1729330000000 is 'Đã duyệt'",
        }
    })


class SuccessResponse(BaseModel):
    """
    Standard success response model

    Used for operations that don't return specific data
    """
    success: bool = Field(True, description="Operation success flag")
    message: str = Field(..., description="Success message")
    data: Optional[Dict[str, Any]] = Field(None, description="Additional response data")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "success": True,
            "message": "Xóa phiếu \"NXT1729330000000\" thành công!",
            "data": {"codes": ["NXT1729330000000"]},
        }
    })
