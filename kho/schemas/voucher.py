"""Warehouse Voucher Schemas

Python attribute names are English; aliases are the column names of the
remote NXKHO (header) and NXKHODE (line) tables, so rows round-trip with
``model_validate(row)`` and ``model_dump(by_alias=True, mode="json")``.
"""

from pydantic import BaseModel, Field, field_validator, computed_field, ConfigDict
from typing import Optional, List, Any
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum


# Enums
class VoucherKind(str, Enum):
    INBOUND = "Nhập kho"
    OUTBOUND = "Xuất kho"


class VoucherStatus(str, Enum):
    PENDING = "Chờ xác nhận"
    APPROVED = "Đã duyệt"
    REJECTED = "Từ chối"


class ApprovalTab(str, Enum):
    ALL = "all"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


# Remote API date formats, tried in order after ISO-8601
_REMOTE_DATE_FORMATS = (
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
    "%m/%d/%Y",
)


def _blank_to_empty(v: Any) -> Any:
    return "" if v is None else v


def _to_decimal(v: Any) -> Any:
    if v is None or v == "":
        return Decimal("0")
    if isinstance(v, str):
        try:
            return Decimal(v.strip())
        except InvalidOperation:
            return v  # let the field validator report it
    return v


class Actor(BaseModel):
    """The caller performing an action (from the session, passed explicitly)"""
    username: str = Field(..., min_length=1)
    role: str = ""


# Voucher Schemas
class VoucherBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", validate_assignment=True)

    kind: VoucherKind = Field(VoucherKind.OUTBOUND, alias="LoaiPhieu")
    address: str = Field("", alias="DiaChi")
    date: Optional[datetime] = Field(None, alias="Ngay")
    requester: str = Field("", alias="NhanVienDeNghi")
    source: str = Field("", alias="Tu")
    destination: str = Field("", alias="Den")
    notes: str = Field("", alias="GhiChu")

    @field_validator("address", "requester", "source", "destination", "notes", mode="before")
    @classmethod
    def empty_strings(cls, v):
        return _blank_to_empty(v)

    @field_validator("date", mode="before")
    @classmethod
    def parse_date(cls, v):
        if v is None or isinstance(v, datetime):
            return v
        if isinstance(v, str):
            text = v.strip()
            if not text:
                return None
            try:
                return datetime.fromisoformat(text)
            except ValueError:
                pass
            for fmt in _REMOTE_DATE_FORMATS:
                try:
                    return datetime.strptime(text, fmt)
                except ValueError:
                    continue
        return v


class Voucher(VoucherBase):
    """Voucher header (one NXKHO row)"""
    code: str = Field(..., min_length=1, alias="MaPhieu")
    status: VoucherStatus = Field(VoucherStatus.PENDING, alias="TrangThai")
    history: str = Field("", alias="LichSu")
    warehouse_keeper: str = Field("", alias="NhanVienKho")

    @field_validator("history", "warehouse_keeper", mode="before")
    @classmethod
    def empty_strings_extra(cls, v):
        return _blank_to_empty(v)

    @field_validator("status", mode="before")
    @classmethod
    def blank_status_is_pending(cls, v):
        if v is None or v == "":
            return VoucherStatus.PENDING
        return v

    @property
    def is_pending(self) -> bool:
        return self.status == VoucherStatus.PENDING

    def to_row(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class VoucherLine(BaseModel):
    """One material line of a voucher (one NXKHODE row)"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore", validate_assignment=True)

    line_code: str = Field("", alias="MaPhieuDe")
    voucher_code: str = Field("", alias="MaPhieu")
    material_code: str = Field(..., min_length=1, alias="MaVT")
    material_name: str = Field("", alias="TenVT")
    unit: str = Field("", alias="ĐVT")
    quality: str = Field("", alias="ChatLuong")
    quantity: Decimal = Field(Decimal("0"), ge=0, alias="SoLuong")
    unit_price: Decimal = Field(Decimal("0"), ge=0, alias="DonGia")
    notes: str = Field("", alias="GhiChu")

    @field_validator("line_code", "voucher_code", "material_name", "unit", "quality", "notes", mode="before")
    @classmethod
    def empty_strings(cls, v):
        return _blank_to_empty(v)

    @field_validator("quantity", "unit_price", mode="before")
    @classmethod
    def numeric(cls, v):
        return _to_decimal(v)

    @computed_field(alias="ThanhTien")
    @property
    def line_total(self) -> Decimal:
        """Always quantity * unit price; incoming ThanhTien values are ignored"""
        return self.quantity * self.unit_price

    def to_row(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class VoucherTotals(BaseModel):
    item_count: int = 0
    total_quantity: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")


class VoucherWithLines(Voucher):
    lines: List[VoucherLine] = Field(default_factory=list)
    totals: VoucherTotals = Field(default_factory=VoucherTotals)


class VoucherStats(BaseModel):
    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0


class VoucherFilter(BaseModel):
    """All predicates AND together; defaults are neutral"""
    tab: ApprovalTab = ApprovalTab.ALL
    search: str = ""
    kind: Optional[VoucherKind] = None
    status: Optional[VoucherStatus] = None


# Request bodies
class VoucherCreate(VoucherBase):
    code: Optional[str] = Field(None, alias="MaPhieu")
    lines: List[VoucherLine] = Field(default_factory=list)


class VoucherUpdate(VoucherBase):
    lines: List[VoucherLine] = Field(default_factory=list)


class ApprovalRequest(BaseModel):
    notes: Optional[str] = None


class BulkCodesRequest(BaseModel):
    codes: List[str] = Field(..., min_length=1)
    notes: Optional[str] = None


class VoucherImportRequest(BaseModel):
    vouchers: List[Voucher] = Field(..., min_length=1)
    lines: List[VoucherLine] = Field(default_factory=list)
    reject_duplicates: bool = False


class VoucherListResponse(BaseModel):
    vouchers: List[Voucher]
    total: int
