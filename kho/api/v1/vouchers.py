"""Warehouse Voucher API endpoints"""

from fastapi import APIRouter, Depends, Query, status
from typing import Any, Dict, List, Optional

from kho.api import deps
from kho.schemas.common import SuccessResponse
from kho.schemas.voucher import (
    Actor,
    ApprovalRequest,
    ApprovalTab,
    BulkCodesRequest,
    Voucher,
    VoucherCreate,
    VoucherFilter,
    VoucherImportRequest,
    VoucherKind,
    VoucherListResponse,
    VoucherStats,
    VoucherStatus,
    VoucherUpdate,
    VoucherWithLines,
)
from kho.core.exceptions import VoucherNotFoundError
from kho.services.voucher import VoucherLifecycleManager

router = APIRouter()


@router.get("", response_model=VoucherListResponse)
async def list_vouchers(
    tab: ApprovalTab = Query(ApprovalTab.ALL, description="Approval tab"),
    search: str = Query("", description="Code, requester, source or destination contains"),
    kind: Optional[VoucherKind] = Query(None, description="Filter by voucher kind"),
    status_filter: Optional[VoucherStatus] = Query(None, alias="status", description="Filter by status"),
    manager: VoucherLifecycleManager = Depends(deps.get_voucher_manager),
    actor: Actor = Depends(deps.get_current_actor),
):
    """
    List vouchers with optional filters.

    All filters combine; leaving them out returns every voucher.
    """
    vouchers = manager.list_vouchers(
        VoucherFilter(tab=tab, search=search, kind=kind, status=status_filter)
    )
    return VoucherListResponse(vouchers=vouchers, total=len(vouchers))


@router.get("/stats", response_model=VoucherStats)
async def voucher_stats(
    manager: VoucherLifecycleManager = Depends(deps.get_voucher_manager),
    actor: Actor = Depends(deps.get_current_actor),
):
    """Counts per approval status."""
    return manager.stats()


@router.post("", response_model=VoucherWithLines, status_code=status.HTTP_201_CREATED)
async def create_voucher(
    voucher_in: VoucherCreate,
    manager: VoucherLifecycleManager = Depends(deps.get_voucher_manager),
    actor: Actor = Depends(deps.get_current_actor),
):
    """
    Create a voucher with its lines.

    The voucher always starts as pending approval.
    """
    return await manager.create_voucher(voucher_in, voucher_in.lines, actor)


@router.post("/import", response_model=SuccessResponse, status_code=status.HTTP_201_CREATED)
async def import_vouchers(
    import_in: VoucherImportRequest,
    manager: VoucherLifecycleManager = Depends(deps.get_voucher_manager),
    actor: Actor = Depends(deps.get_current_actor),
):
    """Import several vouchers and their lines in one batch."""
    codes = await manager.bulk_import_vouchers(
        import_in.vouchers,
        import_in.lines,
        actor,
        reject_duplicates=import_in.reject_duplicates,
    )
    return SuccessResponse(
        message=f"Nhập thành công {len(codes)} phiếu!",
        data={"codes": codes},
    )


@router.post("/bulk-delete", response_model=SuccessResponse)
async def bulk_delete_vouchers(
    request_in: BulkCodesRequest,
    manager: VoucherLifecycleManager = Depends(deps.get_voucher_manager),
    actor: Actor = Depends(deps.get_current_actor),
):
    """Delete several pending vouchers and their lines."""
    codes = await manager.bulk_delete_vouchers(request_in.codes, actor)
    return SuccessResponse(
        message=f"Đã xóa {len(codes)} phiếu thành công!",
        data={"codes": codes},
    )


@router.post("/bulk-approve", response_model=List[Voucher])
async def bulk_approve_vouchers(
    request_in: BulkCodesRequest,
    manager: VoucherLifecycleManager = Depends(deps.get_voucher_manager),
    actor: Actor = Depends(deps.get_current_actor),
):
    """Approve several pending vouchers in one remote call."""
    return await manager.bulk_approve_vouchers(request_in.codes, actor, request_in.notes)


@router.post("/bulk-reject", response_model=List[Voucher])
async def bulk_reject_vouchers(
    request_in: BulkCodesRequest,
    manager: VoucherLifecycleManager = Depends(deps.get_voucher_manager),
    actor: Actor = Depends(deps.get_current_actor),
):
    """Reject several pending vouchers in one remote call."""
    return await manager.bulk_reject_vouchers(request_in.codes, actor, request_in.notes)


@router.post("/refresh", response_model=VoucherStats)
async def refresh_vouchers(
    manager: VoucherLifecycleManager = Depends(deps.get_voucher_manager),
    actor: Actor = Depends(deps.get_current_actor),
):
    """
    Reload vouchers and lines from the remote tables.

    Use after a failed write to bring local state back in line.
    """
    return await manager.refresh()


@router.get("/{code}", response_model=VoucherWithLines)
async def get_voucher(
    code: str,
    manager: VoucherLifecycleManager = Depends(deps.get_voucher_manager),
    actor: Actor = Depends(deps.get_current_actor),
):
    """Get a voucher with its lines and totals."""
    voucher = manager.get_voucher_with_lines(code)
    if voucher is None:
        raise VoucherNotFoundError(code)
    return voucher


@router.get("/{code}/print")
async def print_voucher(
    code: str,
    manager: VoucherLifecycleManager = Depends(deps.get_voucher_manager),
    actor: Actor = Depends(deps.get_current_actor),
) -> Dict[str, Any]:
    """
    Field maps for the warehouse slip print template.

    Returns the header map, one map per line and the totals.
    """
    return manager.print_payload(code)


@router.put("/{code}", response_model=VoucherWithLines)
async def update_voucher(
    code: str,
    voucher_in: VoucherUpdate,
    manager: VoucherLifecycleManager = Depends(deps.get_voucher_manager),
    actor: Actor = Depends(deps.get_current_actor),
):
    """
    Update a pending voucher.

    The submitted lines replace every existing line of the voucher. Header
    fields left out of the body keep their stored values.
    """
    return await manager.update_voucher(code, voucher_in, voucher_in.lines, actor)


@router.delete("/{code}", response_model=SuccessResponse)
async def delete_voucher(
    code: str,
    manager: VoucherLifecycleManager = Depends(deps.get_voucher_manager),
    actor: Actor = Depends(deps.get_current_actor),
):
    """Delete a pending voucher and its lines."""
    await manager.delete_voucher(code, actor)
    return SuccessResponse(
        message=f"Xóa phiếu \"{code}\" thành công!",
        data={"codes": [code]},
    )


@router.post("/{code}/approve", response_model=Voucher)
async def approve_voucher(
    code: str,
    approval_in: Optional[ApprovalRequest] = None,
    manager: VoucherLifecycleManager = Depends(deps.get_voucher_manager),
    actor: Actor = Depends(deps.get_current_actor),
):
    """Approve a pending voucher."""
    notes = approval_in.notes if approval_in else None
    return await manager.approve_voucher(code, actor, notes)


@router.post("/{code}/reject", response_model=Voucher)
async def reject_voucher(
    code: str,
    approval_in: Optional[ApprovalRequest] = None,
    manager: VoucherLifecycleManager = Depends(deps.get_voucher_manager),
    actor: Actor = Depends(deps.get_current_actor),
):
    """Reject a pending voucher."""
    notes = approval_in.notes if approval_in else None
    return await manager.reject_voucher(code, actor, notes)
