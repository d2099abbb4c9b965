"""Warehouse voucher services - lifecycle, derived views, codes and print payloads"""

from .lifecycle import VoucherLifecycleManager
from .store import VoucherStore
from .views import calculate_totals, filter_vouchers, lines_for_voucher, status_stats
from .codes import generate_voucher_code, next_daily_voucher_code, make_line_code, next_line_code
from .printing import build_print_payload

__all__ = [
    "VoucherLifecycleManager",
    "VoucherStore",
    "calculate_totals",
    "filter_vouchers",
    "lines_for_voucher",
    "status_stats",
    "generate_voucher_code",
    "next_daily_voucher_code",
    "make_line_code",
    "next_line_code",
    "build_print_payload",
]
