"""
Kho Business Services
Remote table access, notifications and the voucher lifecycle
"""

from .appsheet_client import AppSheetTableClient, TableAction
from .notifications import NotificationDispatcher, ZaloNotifier
from .voucher import VoucherLifecycleManager, VoucherStore

__all__ = [
    "AppSheetTableClient",
    "TableAction",
    "NotificationDispatcher",
    "ZaloNotifier",
    "VoucherLifecycleManager",
    "VoucherStore",
]
