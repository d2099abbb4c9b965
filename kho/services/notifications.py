"""
Voucher Notifications
Zalo Bot messages sent after a voucher is created, approved or rejected.
Delivery is best-effort: sends run detached from the request and a failure
is only logged.
"""
import asyncio
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional, Protocol, Set

import aiohttp
from pydantic import BaseModel

from kho.core.config import Settings, settings as default_settings
from kho.core.exceptions import NotificationError
from kho.core.logging import get_logger
from kho.schemas.voucher import ApprovalAction, Voucher, VoucherKind, VoucherLine, VoucherTotals

logger = get_logger("notifications")

# Longer messages are cut after this many material lines
MAX_LISTED_MATERIALS = 5


class BotCredentials(BaseModel):
    bot_token: str
    chat_id: str


class Notifier(Protocol):
    async def send_message(self, credentials: BotCredentials, text: str) -> None:
        ...


class ZaloNotifier:
    """Sends text messages through the Zalo Bot API"""

    def __init__(self, config: Optional[Settings] = None, session: Optional[aiohttp.ClientSession] = None):
        self.config = config or default_settings
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=30))
            self._owns_session = True
        return self._session

    async def close(self):
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()

    async def send_message(self, credentials: BotCredentials, text: str) -> None:
        if not credentials.bot_token or not credentials.chat_id or not text:
            raise NotificationError("Missing required parameters: bot token, chat id, message")

        url = f"{self.config.ZALO_API_URL.rstrip('/')}/bot{credentials.bot_token}/sendMessage"
        session = await self._get_session()
        try:
            async with session.post(url, json={"chat_id": credentials.chat_id, "text": text}) as response:
                body = await response.text()
                if response.status >= 400:
                    raise NotificationError(
                        f"Zalo API error: {response.status}",
                        detail=body[:500],
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NotificationError(f"Zalo API connection error: {e}")

        logger.info(f"Message sent to chat {credentials.chat_id}")


class NotificationDispatcher:
    """
    Runs notification sends as background tasks

    References to running tasks are kept until they finish; exceptions are
    logged in the done-callback and never re-raised.
    """

    def __init__(self, notifier: Optional[Notifier], config: Optional[Settings] = None):
        self.notifier = notifier
        self.config = config or default_settings
        self._tasks: Set[asyncio.Task] = set()

    @property
    def credentials(self) -> BotCredentials:
        return BotCredentials(bot_token=self.config.ZALO_BOT_TOKEN, chat_id=self.config.ZALO_CHAT_ID)

    def is_enabled(self, event: str) -> bool:
        if self.notifier is None or not self.config.notifications_active:
            return False
        flags = {
            "creation": self.config.NOTIFY_VOUCHER_CREATION,
            ApprovalAction.APPROVE.value: self.config.NOTIFY_VOUCHER_APPROVAL,
            ApprovalAction.REJECT.value: self.config.NOTIFY_VOUCHER_REJECTION,
        }
        return flags.get(event, False)

    def dispatch(self, event: str, build_message: Callable[[], str]) -> Optional[asyncio.Task]:
        """Schedule a send for ``event`` if that event type is switched on"""
        if not self.is_enabled(event):
            return None
        task = asyncio.create_task(self._send(build_message))
        self._tasks.add(task)
        task.add_done_callback(self._finished)
        return task

    async def _send(self, build_message: Callable[[], str]) -> None:
        text = build_message()
        await self.notifier.send_message(self.credentials, text)

    def _finished(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Background notification failed: {error}")

    async def drain(self) -> None:
        """Wait for in-flight sends (shutdown and tests)"""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


def _money(amount: Decimal) -> str:
    # vi-VN grouping: 1.234.567
    return f"₫{int(amount):,}".replace(",", ".")


def _quantity(value: Decimal) -> str:
    return format(value.normalize(), "f") if value == value.to_integral() else str(value)


def build_creation_message(
    voucher: Voucher,
    lines: List[VoucherLine],
    totals: VoucherTotals,
    now: Optional[datetime] = None,
) -> str:
    type_text = "NHẬP KHO" if voucher.kind == VoucherKind.INBOUND else "XUẤT KHO"
    stamp = (now or datetime.now()).strftime("%H:%M:%S %d/%m/%Y")

    parts = [
        f"📦 *CÓ PHIẾU {type_text} MỚI*",
        "",
        f"🏷️ **Mã phiếu:** {voucher.code}",
        f"👤 **Người tạo:** {voucher.requester}",
        f"📅 **Thời gian:** {stamp}",
        f"🏢 **Từ:** {voucher.source}",
        f"🎯 **Đến:** {voucher.destination}",
        f"📊 **Số mặt hàng:** {totals.item_count}",
        f"💰 **Tổng tiền:** {_money(totals.total_amount)}",
    ]

    if lines:
        parts.append("")
        parts.append("📋 **CHI TIẾT HÀNG HÓA:**")
        for index, line in enumerate(lines[:MAX_LISTED_MATERIALS], start=1):
            parts.append(f"{index}. {line.material_name} ({line.material_code})")
            parts.append(f"   📦 Số lượng: {_quantity(line.quantity)} {line.unit}")
            parts.append(f"   💰 Thành tiền: {_money(line.line_total)}")
        if len(lines) > MAX_LISTED_MATERIALS:
            parts.append(f"   ... và {len(lines) - MAX_LISTED_MATERIALS} mặt hàng khác")

    parts.append("")
    parts.append("✅ Phiếu đã được tạo thành công và đang chờ duyệt.")
    return "\n".join(parts)


def build_approval_message(
    code: str,
    action: ApprovalAction,
    approver: str,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    approved = action == ApprovalAction.APPROVE
    stamp = (now or datetime.now()).strftime("%H:%M:%S %d/%m/%Y")

    parts = [
        f"{'✅' if approved else '❌'} *THÔNG BÁO {'DUYỆT' if approved else 'TỪ CHỐI'} PHIẾU*",
        "",
        f"🏷️ **Mã phiếu:** {code}",
        f"👤 **Người duyệt:** {approver}",
        f"📅 **Thời gian:** {stamp}",
    ]
    if notes:
        parts.append(f"📝 **Ghi chú:** {notes}")
    parts.append("")
    parts.append("✅ Phiếu đã được duyệt thành công!" if approved else "❌ Phiếu đã bị từ chối.")
    return "\n".join(parts)
