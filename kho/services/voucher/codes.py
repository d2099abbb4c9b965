"""
Voucher Code Generation
Header codes (timestamp or daily sequence) and line codes
"""
import re
from datetime import date, datetime
from typing import Iterable, Optional

from kho.core.config import settings
from kho.schemas.voucher import VoucherKind


DAILY_PREFIXES = {
    VoucherKind.INBOUND: "NK",
    VoucherKind.OUTBOUND: "XK",
}


def generate_voucher_code(prefix: Optional[str] = None, now: Optional[datetime] = None) -> str:
    """<prefix><epoch milliseconds>, e.g. NXT1729330000000"""
    moment = now or datetime.now()
    return f"{prefix if prefix is not None else settings.VOUCHER_CODE_PREFIX}{int(moment.timestamp() * 1000)}"


def next_daily_voucher_code(
    existing: Iterable[str],
    kind: VoucherKind,
    today: Optional[date] = None,
) -> str:
    """
    NK/XK + YYMMDD + three-digit sequence

    The sequence is one past the highest already used for the same kind and
    day; codes in any other format are ignored.
    """
    day = today or date.today()
    stem = f"{DAILY_PREFIXES[VoucherKind(kind)]}{day.strftime('%y%m%d')}"
    pattern = re.compile(rf"^{stem}(\d{{3}})$")

    highest = 0
    for code in existing:
        match = pattern.match(code or "")
        if match:
            highest = max(highest, int(match.group(1)))

    return f"{stem}{highest + 1:03d}"


def make_line_code(voucher_code: str, material_code: str) -> str:
    return f"{voucher_code}_{material_code}"


def next_line_code(voucher_code: str, existing: Iterable[str]) -> str:
    """<voucher>_<NNN>, one past the highest numeric suffix under voucher_code"""
    pattern = re.compile(rf"^{re.escape(voucher_code)}_(\d+)$")
    highest = 0
    for code in existing:
        match = pattern.match(code or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return f"{voucher_code}_{highest + 1:03d}"
