"""
Voucher print payload
Field maps consumed by the print template; rendering happens elsewhere.
"""
from typing import Any, Dict, List

from kho.core.exceptions import ValidationError
from kho.schemas.voucher import Voucher, VoucherKind, VoucherLine
from kho.services.voucher.views import calculate_totals


def build_print_payload(voucher: Voucher, lines: List[VoucherLine]) -> Dict[str, Any]:
    """
    Build the header/line field maps of the warehouse slip template

    Raises ValidationError when the voucher has no lines.
    """
    if not lines:
        raise ValidationError("Không có chi tiết phiếu để in!", detail=f"Voucher {voucher.code} has no lines")

    header = {
        "LOẠI PHIẾU": "Phiếu nhập" if voucher.kind == VoucherKind.INBOUND else "Phiếu xuất",
        "MÃ PHIẾU": voucher.code,
        "NHÂN VIÊN ĐỀ NGHỊ": voucher.requester,
        "NGÀY": voucher.date.strftime("%d/%m/%Y") if voucher.date else "",
        "GIỜ": voucher.date.strftime("%H:%M") if voucher.date else "",
        "ĐỊA CHỈ": voucher.address,
        # Not tracked on NXKHO; the template still expects the keys
        "MÃ TRẠM": "",
        "TÊN KẾ HOẠCH": "",
        "HỢP ĐỒNG": "",
        "MÃ CÔNG TRÌNH": "",
        "TỪ": voucher.source,
        "ĐẾN": voucher.destination,
        "GHI CHÚ": voucher.notes,
    }

    details = [
        {
            "MÃ VẬT TƯ": line.material_code,
            "TÊN VẬT TƯ": line.material_name,
            "ĐƠN VỊ TÍNH": line.unit,
            "SỐ LƯỢNG YÊU CẦU": line.quantity,
            "SỐ LƯỢNG THỰC TẾ": line.quantity,
            "ĐƠN GIÁ": line.unit_price,
            "THÀNH TIỀN": line.line_total,
        }
        for line in lines
    ]

    totals = calculate_totals(lines)
    return {
        "header": header,
        "lines": details,
        "totals": {
            "SỐ MẶT HÀNG": totals.item_count,
            "TỔNG SỐ LƯỢNG": totals.total_quantity,
            "TỔNG TIỀN": totals.total_amount,
        },
    }
