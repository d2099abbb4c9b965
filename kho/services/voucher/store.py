"""
In-memory voucher collections

The store is the client-side mirror of the two remote tables. It has no
persistence of its own; ``refresh`` on the manager reloads it from remote.
"""
from contextlib import asynccontextmanager
from typing import Dict, Iterable, List, Optional, Tuple

from kho.core.logging import get_logger
from kho.schemas.voucher import Voucher, VoucherLine

logger = get_logger("business")

Snapshot = Tuple[Dict[str, Voucher], List[VoucherLine]]


class VoucherStore:
    """Ordered headers keyed by code, plus a flat list of lines"""

    def __init__(self, vouchers: Optional[Iterable[Voucher]] = None, lines: Optional[Iterable[VoucherLine]] = None):
        self.vouchers: Dict[str, Voucher] = {}
        self.lines: List[VoucherLine] = []
        self.replace(vouchers or [], lines or [])

    def replace(self, vouchers: Iterable[Voucher], lines: Iterable[VoucherLine]):
        self.vouchers = {voucher.code: voucher for voucher in vouchers}
        self.lines = list(lines)

    def get(self, code: str) -> Optional[Voucher]:
        return self.vouchers.get(code)

    def __contains__(self, code: str) -> bool:
        return code in self.vouchers

    def __len__(self) -> int:
        return len(self.vouchers)

    def add(self, voucher: Voucher, lines: Iterable[VoucherLine] = ()):
        self.vouchers[voucher.code] = voucher
        self.lines.extend(lines)

    def remove(self, codes: Iterable[str]) -> List[VoucherLine]:
        """Drop headers and their lines; returns the removed lines"""
        doomed = set(codes)
        for code in doomed:
            self.vouchers.pop(code, None)
        removed = [line for line in self.lines if line.voucher_code in doomed]
        self.lines = [line for line in self.lines if line.voucher_code not in doomed]
        return removed

    def replace_lines(self, code: str, lines: Iterable[VoucherLine]) -> List[VoucherLine]:
        """Swap the whole line set of one voucher; returns the previous lines"""
        previous = [line for line in self.lines if line.voucher_code == code]
        self.lines = [line for line in self.lines if line.voucher_code != code]
        self.lines.extend(lines)
        return previous

    def snapshot(self) -> Snapshot:
        return (
            {code: voucher.model_copy(deep=True) for code, voucher in self.vouchers.items()},
            [line.model_copy(deep=True) for line in self.lines],
        )

    def restore(self, snapshot: Snapshot):
        vouchers, lines = snapshot
        self.vouchers = dict(vouchers)
        self.lines = list(lines)

    @asynccontextmanager
    async def optimistic(self, label: str = "update"):
        """
        Snapshot, run the block, restore on any exception

        Local mutations go first inside the block, remote calls after them.
        The exception is re-raised unchanged once the snapshot is back.
        """
        snapshot = self.snapshot()
        try:
            yield self
        except BaseException as e:
            self.restore(snapshot)
            logger.error(f"Rolled back local {label}: {e}")
            raise
