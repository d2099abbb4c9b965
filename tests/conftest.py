"""
Test Configuration and Fixtures
Shared testing infrastructure for the Kho voucher service
"""

import os

# Keep test runs off the network and the filesystem
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("NOTIFICATION_ENABLED", "false")
os.environ.setdefault("APPSHEET_BASE_URL", "http://127.0.0.1:9/tables")

import pytest
from decimal import Decimal
from datetime import datetime
from typing import Any, Dict, Generator, List, Optional
from fastapi.testclient import TestClient

from kho.api import deps
from kho.core.config import Settings
from kho.core.exceptions import NotificationError, RemoteServiceError
from kho.core.security import create_access_token
from kho.main import app
from kho.schemas.voucher import Actor, VoucherCreate, VoucherKind, VoucherLine
from kho.services.appsheet_client import TableAction
from kho.services.notifications import BotCredentials, NotificationDispatcher
from kho.services.voucher import VoucherLifecycleManager


class FakeTableClient:
    """
    In-memory stand-in for the remote tables API

    Records every call and can be told to fail a given table/action.
    """

    def __init__(self, config: Settings):
        self.keys = {config.VOUCHER_TABLE: "MaPhieu", config.VOUCHER_LINE_TABLE: "MaPhieuDe"}
        self.tables: Dict[str, List[Dict[str, Any]]] = {table: [] for table in self.keys}
        self.calls: List[tuple] = []
        self.failures = set()

    def fail_on(self, table: str, action):
        self.failures.add((table, TableAction(action)))

    def calls_for(self, table: Optional[str] = None, action=None) -> List[tuple]:
        return [
            call for call in self.calls
            if (table is None or call[0] == table) and (action is None or call[1] == TableAction(action))
        ]

    async def request(self, table, action, rows=None, properties=None):
        action = TableAction(action)
        rows = [dict(row) for row in rows or []]
        self.calls.append((table, action, rows))
        if (table, action) in self.failures:
            raise RemoteServiceError("Lỗi kết nối dữ liệu", detail=f"{action.value} {table} failed")

        key = self.keys[table]
        data = self.tables[table]
        if action == TableAction.FIND:
            return [dict(row) for row in data]
        if action == TableAction.ADD:
            data.extend(rows)
        elif action == TableAction.EDIT:
            for row in rows:
                for existing in data:
                    if existing[key] == row[key]:
                        existing.update(row)
        elif action == TableAction.DELETE:
            doomed = {row[key] for row in rows}
            data[:] = [row for row in data if row[key] not in doomed]
        return rows


class FakeNotifier:
    """Collects sent messages; raises NotificationError when fail is set"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.messages: List[str] = []

    async def send_message(self, credentials: BotCredentials, text: str) -> None:
        if self.fail:
            raise NotificationError("Zalo API error: 500")
        self.messages.append(text)


@pytest.fixture
def test_settings() -> Settings:
    """Settings with notifications fully configured"""
    return Settings(
        LOG_TO_FILE=False,
        NOTIFICATION_ENABLED=True,
        ZALO_BOT_TOKEN="test-token",
        ZALO_CHAT_ID="test-chat",
        APPSHEET_BASE_URL="http://127.0.0.1:9/tables",
    )


@pytest.fixture
def table_client(test_settings: Settings) -> FakeTableClient:
    return FakeTableClient(test_settings)


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def voucher_manager(table_client, notifier, test_settings) -> VoucherLifecycleManager:
    """Manager over empty fake tables with notifications on"""
    dispatcher = NotificationDispatcher(notifier, test_settings)
    return VoucherLifecycleManager(table_client, dispatcher=dispatcher, config=test_settings)


@pytest.fixture
def admin_actor() -> Actor:
    return Actor(username="admin", role="Admin")


@pytest.fixture
def manager_actor() -> Actor:
    return Actor(username="quanly01", role="Quản lý")


@pytest.fixture
def staff_actor() -> Actor:
    return Actor(username="nv01", role="Nhân viên")


@pytest.fixture
def make_line():
    """Factory for voucher lines"""
    def _make_line(material: str, quantity, price, **extra) -> VoucherLine:
        return VoucherLine(
            material_code=material,
            material_name=extra.pop("material_name", f"Vật tư {material}"),
            unit=extra.pop("unit", "Cái"),
            quantity=Decimal(str(quantity)),
            unit_price=Decimal(str(price)),
            **extra,
        )
    return _make_line


@pytest.fixture
def sample_header() -> VoucherCreate:
    """Outbound voucher header for testing"""
    return VoucherCreate(
        code="V1",
        kind=VoucherKind.OUTBOUND,
        address="12 Nguyễn Huệ, Q1",
        date=datetime(2024, 10, 19, 8, 30),
        requester="Nguyễn Văn A",
        source="Kho Tổng",
        destination="Công trình B",
        notes="Xuất vật tư",
    )


@pytest.fixture
def sample_voucher_data() -> Dict[str, Any]:
    """Voucher create payload as the API receives it"""
    return {
        "MaPhieu": "V1",
        "LoaiPhieu": "Xuất kho",
        "DiaChi": "12 Nguyễn Huệ, Q1",
        "Ngay": "2024-10-19T08:30:00",
        "NhanVienDeNghi": "Nguyễn Văn A",
        "Tu": "Kho Tổng",
        "Den": "Công trình B",
        "GhiChu": "Xuất vật tư",
        "lines": [
            {"MaVT": "A", "TenVT": "Xi măng", "ĐVT": "Bao", "SoLuong": 2, "DonGia": 1000},
        ],
    }


@pytest.fixture
def sample_remote_rows() -> Dict[str, List[Dict[str, Any]]]:
    """Rows as the remote Find call returns them"""
    return {
        "vouchers": [
            {
                "MaPhieu": "NXT1", "LoaiPhieu": "Nhập kho", "Ngay": "10/19/2024 08:30:00",
                "NhanVienDeNghi": "Trần B", "Tu": "NCC Hòa Phát", "Den": "Kho Tổng",
                "TrangThai": "Chờ xác nhận", "LichSu": "", "NhanVienKho": "",
            },
            {
                "MaPhieu": "NXT2", "LoaiPhieu": "Xuất kho", "Ngay": "10/20/2024 09:00:00",
                "NhanVienDeNghi": "Lê C", "Tu": "Kho Tổng", "Den": "Công trình D",
                "TrangThai": "Đã duyệt", "LichSu": "[20/10/2024 10:00:00] Đã duyệt bởi admin",
                "NhanVienKho": "admin",
            },
        ],
        "lines": [
            {"MaPhieuDe": "NXT1_A", "MaPhieu": "NXT1", "MaVT": "A", "TenVT": "Thép", "ĐVT": "Kg",
             "SoLuong": "10", "DonGia": "15000", "ThanhTien": "999"},
            {"MaPhieuDe": "NXT2_B", "MaPhieu": "NXT2", "MaVT": "B", "TenVT": "Cát", "ĐVT": "m3",
             "SoLuong": "3", "DonGia": "200000", "ThanhTien": "600000"},
        ],
    }


@pytest.fixture
def seeded_manager(voucher_manager, table_client, sample_remote_rows, test_settings):
    """Manager whose fake tables hold the sample rows (not yet loaded)"""
    table_client.tables[test_settings.VOUCHER_TABLE] = [dict(r) for r in sample_remote_rows["vouchers"]]
    table_client.tables[test_settings.VOUCHER_LINE_TABLE] = [dict(r) for r in sample_remote_rows["lines"]]
    return voucher_manager


def auth_headers_for(username: str, role: str) -> Dict[str, str]:
    token = create_access_token({"sub": username, "role": role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_auth_headers() -> Dict[str, str]:
    """Authentication headers for an approver"""
    return auth_headers_for("admin", "Admin")


@pytest.fixture
def staff_auth_headers() -> Dict[str, str]:
    """Authentication headers for a non-approver"""
    return auth_headers_for("nv01", "Nhân viên")


@pytest.fixture(scope="function")
def client(voucher_manager) -> Generator[TestClient, None, None]:
    """Create a test client with the manager dependency overridden"""
    app.dependency_overrides[deps.get_voucher_manager] = lambda: voucher_manager
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# API test helpers
class APITestHelper:
    """Helper class for API testing"""

    @staticmethod
    def assert_error_response(response, expected_status: int, expected_error: str = None):
        """Assert error response format"""
        assert response.status_code == expected_status
        data = response.json()
        assert "message" in data
        if expected_error:
            assert data["error"] == expected_error


@pytest.fixture
def api_helper() -> APITestHelper:
    return APITestHelper()
