"""
Derived voucher views
Pure functions over the header/line collections; nothing here mutates input.
"""
from decimal import Decimal
from typing import Iterable, List

from kho.schemas.voucher import (
    ApprovalTab,
    Voucher,
    VoucherFilter,
    VoucherLine,
    VoucherStats,
    VoucherStatus,
    VoucherTotals,
)


TAB_STATUS = {
    ApprovalTab.PENDING: VoucherStatus.PENDING,
    ApprovalTab.APPROVED: VoucherStatus.APPROVED,
    ApprovalTab.REJECTED: VoucherStatus.REJECTED,
}


def _matches_search(voucher: Voucher, needle: str) -> bool:
    haystack = (voucher.code, voucher.requester, voucher.source, voucher.destination)
    return any(needle in (value or "").lower() for value in haystack)


def filter_vouchers(vouchers: Iterable[Voucher], criteria: VoucherFilter) -> List[Voucher]:
    """
    Apply tab, search, kind and status filters (ANDed)

    Search is a case-insensitive substring match on code, requester,
    source and destination. Neutral criteria keep every voucher in order.
    """
    needle = criteria.search.strip().lower()
    tab_status = TAB_STATUS.get(criteria.tab)

    result = []
    for voucher in vouchers:
        if tab_status is not None and voucher.status != tab_status:
            continue
        if needle and not _matches_search(voucher, needle):
            continue
        if criteria.kind is not None and voucher.kind != criteria.kind:
            continue
        if criteria.status is not None and voucher.status != criteria.status:
            continue
        result.append(voucher)
    return result


def lines_for_voucher(lines: Iterable[VoucherLine], code: str) -> List[VoucherLine]:
    return [line for line in lines if line.voucher_code == code]


def calculate_totals(lines: Iterable[VoucherLine]) -> VoucherTotals:
    item_count = 0
    total_quantity = Decimal("0")
    total_amount = Decimal("0")
    for line in lines:
        item_count += 1
        total_quantity += line.quantity
        total_amount += line.line_total
    return VoucherTotals(item_count=item_count, total_quantity=total_quantity, total_amount=total_amount)


def status_stats(vouchers: Iterable[Voucher]) -> VoucherStats:
    stats = VoucherStats()
    for voucher in vouchers:
        stats.total += 1
        if voucher.status == VoucherStatus.PENDING:
            stats.pending += 1
        elif voucher.status == VoucherStatus.APPROVED:
            stats.approved += 1
        elif voucher.status == VoucherStatus.REJECTED:
            stats.rejected += 1
    return stats
