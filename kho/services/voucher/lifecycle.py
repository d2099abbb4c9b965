"""
Voucher Lifecycle Manager
Approval state machine and header/line consistency for warehouse vouchers.

Every mutation goes through this class. Status rules:

    Pending --approve--> Approved   (terminal)
    Pending --reject---> Rejected   (terminal)
    Pending --edit-----> Pending
    Pending --delete---> removed

Header (NXKHO) and line (NXKHODE) writes are separate remote calls with no
transaction around them. If the second call of a create or update fails the
remote tables can be left with a header and no lines (or the reverse);
``refresh`` reloads whatever the remote side holds.
"""
from collections import OrderedDict
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from kho.core.config import Settings, settings as default_settings
from kho.core.exceptions import (
    InsufficientPermissionsError,
    RemoteServiceError,
    ValidationError,
    VoucherNotFoundError,
    VoucherStateError,
)
from kho.core.logging import get_logger
from kho.core.security import check_role
from kho.schemas.voucher import (
    Actor,
    ApprovalAction,
    Voucher,
    VoucherBase,
    VoucherFilter,
    VoucherLine,
    VoucherStats,
    VoucherStatus,
    VoucherTotals,
    VoucherWithLines,
)
from kho.services.appsheet_client import TableAction, TableClient
from kho.services.notifications import (
    NotificationDispatcher,
    build_approval_message,
    build_creation_message,
)
from kho.services.voucher.codes import generate_voucher_code, make_line_code, next_line_code
from kho.services.voucher.printing import build_print_payload
from kho.services.voucher.store import VoucherStore
from kho.services.voucher.views import calculate_totals, filter_vouchers, lines_for_voucher, status_stats

logger = get_logger("business")

HEADER_FIELDS = tuple(VoucherBase.model_fields)

ACTION_LABELS = {
    "update": "sửa",
    "delete": "xóa",
    "import": "nhập lại",
    ApprovalAction.APPROVE: "duyệt",
    ApprovalAction.REJECT: "từ chối",
}


class VoucherLifecycleManager:
    """
    Mediates all voucher mutations against the remote tables and the local store

    Local state changes only through these methods. Delete and update are
    optimistic and roll back on remote failure; create, import, approve and
    reject touch local state only after the remote calls succeed.
    """

    def __init__(
        self,
        client: TableClient,
        store: Optional[VoucherStore] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        config: Optional[Settings] = None,
    ):
        self.client = client
        self.config = config or default_settings
        self.store = store or VoucherStore()
        self.dispatcher = dispatcher or NotificationDispatcher(None, self.config)

    @property
    def header_table(self) -> str:
        return self.config.VOUCHER_TABLE

    @property
    def line_table(self) -> str:
        return self.config.VOUCHER_LINE_TABLE

    # Guards

    def ensure_role(self, actor: Actor, action) -> None:
        try:
            check_role(actor.role, self.config.APPROVER_ROLES, ACTION_LABELS[action])
        except InsufficientPermissionsError:
            logger.warning(f"{actor.username} ({actor.role or 'no role'}) denied: {ACTION_LABELS[action]}")
            raise

    def ensure_pending(self, voucher: Voucher, action) -> None:
        """The one status guard every mutation of an existing voucher goes through"""
        if not voucher.is_pending:
            logger.warning(f"Refused {ACTION_LABELS[action]} on {voucher.code}: status is {voucher.status.value}")
            raise VoucherStateError(voucher.code, voucher.status.value, ACTION_LABELS[action])

    def _require(self, code: str) -> Voucher:
        voucher = self.store.get(code)
        if voucher is None:
            raise VoucherNotFoundError(code)
        return voucher

    def _require_pending(self, codes: Iterable[str], action) -> List[Voucher]:
        unique = list(OrderedDict.fromkeys(codes))
        if not unique:
            raise ValidationError("Vui lòng chọn ít nhất một phiếu!")
        vouchers = [self._require(code) for code in unique]
        for voucher in vouchers:
            self.ensure_pending(voucher, action)
        return vouchers

    # Line helpers

    @staticmethod
    def _prepare_lines(code: str, lines: Iterable[VoucherLine]) -> List[VoucherLine]:
        """
        Copy lines onto ``code``: stamp the back-reference and fill in
        missing line codes (<code>_<material>, or <code>_<NNN> on a clash)
        """
        prepared = []
        taken = set()
        for line in lines:
            copy = line.model_copy(update={"voucher_code": code})
            if copy.line_code and not copy.line_code.startswith(f"{code}_"):
                # Line codes are scoped to their voucher; a foreign one is re-derived
                copy = copy.model_copy(update={"line_code": ""})
            if not copy.line_code:
                candidate = make_line_code(code, copy.material_code)
                if candidate in taken:
                    candidate = next_line_code(code, taken)
                copy = copy.model_copy(update={"line_code": candidate})
            elif copy.line_code in taken:
                raise ValidationError(
                    "Mã chi tiết phiếu bị trùng!",
                    detail=f"Duplicate line code {copy.line_code}",
                )
            taken.add(copy.line_code)
            prepared.append(copy)
        return prepared

    @staticmethod
    def _require_lines(lines: List[VoucherLine]) -> None:
        if not lines:
            raise ValidationError("Vui lòng thêm ít nhất một vật tư!")

    @staticmethod
    def _line_keys(lines: Iterable[VoucherLine]) -> List[Dict[str, str]]:
        return [{"MaPhieuDe": line.line_code} for line in lines]

    @staticmethod
    def _header_fields(header: VoucherBase) -> dict:
        return {name: getattr(header, name) for name in HEADER_FIELDS}

    # Create / update / delete

    async def create_voucher(self, header: VoucherBase, lines: List[VoucherLine], actor: Actor) -> VoucherWithLines:
        """
        Create a Pending voucher with its lines

        Remote writes: Add header, then Add all lines in one batch. The new
        voucher is added to the store only after both succeed.
        """
        self._require_lines(lines)

        code = getattr(header, "code", None) or generate_voucher_code(self.config.VOUCHER_CODE_PREFIX)
        if code in self.store:
            raise ValidationError(f"Mã phiếu {code} đã tồn tại!", detail=f"Voucher {code} already exists")

        fields = self._header_fields(header)
        fields["date"] = fields["date"] or datetime.now()
        fields["requester"] = fields["requester"] or actor.username
        voucher = Voucher(code=code, status=VoucherStatus.PENDING, **fields)
        new_lines = self._prepare_lines(code, lines)

        try:
            await self.client.request(self.header_table, TableAction.ADD, rows=[voucher.to_row()])
            await self.client.request(self.line_table, TableAction.ADD, rows=[line.to_row() for line in new_lines])
        except RemoteServiceError as e:
            logger.error(f"Create {code} failed: {e.message} ({e.detail})")
            raise

        self.store.add(voucher, new_lines)
        totals = calculate_totals(new_lines)
        logger.info(f"{actor.username} created {voucher.kind.value} {code} with {totals.item_count} line(s)")

        self.dispatcher.dispatch(
            "creation",
            lambda: build_creation_message(voucher, new_lines, totals),
        )
        return self._with_lines(voucher)

    async def update_voucher(
        self, code: str, header: VoucherBase, lines: List[VoucherLine], actor: Actor
    ) -> VoucherWithLines:
        """
        Merge the header fields sent and replace the whole line set

        Remote writes: Edit header, Delete every prior line, Add the new
        lines. Local state is updated first and restored if any call fails.
        """
        voucher = self._require(code)
        self.ensure_pending(voucher, "update")
        self._require_lines(lines)

        # Only fields present in the request overwrite the stored header
        fields = {
            name: value for name, value in self._header_fields(header).items()
            if name in header.model_fields_set and not (name == "date" and value is None)
        }
        updated = voucher.model_copy(update=fields)
        new_lines = self._prepare_lines(code, lines)

        async with self.store.optimistic(f"update of {code}"):
            self.store.vouchers[code] = updated
            previous = self.store.replace_lines(code, new_lines)

            await self.client.request(self.header_table, TableAction.EDIT, rows=[updated.to_row()])
            if previous:
                await self.client.request(self.line_table, TableAction.DELETE, rows=self._line_keys(previous))
            await self.client.request(self.line_table, TableAction.ADD, rows=[line.to_row() for line in new_lines])

        logger.info(f"{actor.username} updated {code}: {len(previous)} line(s) replaced by {len(new_lines)}")
        return self._with_lines(updated)

    async def delete_voucher(self, code: str, actor: Actor) -> None:
        await self.bulk_delete_vouchers([code], actor)

    async def bulk_delete_vouchers(self, codes: List[str], actor: Actor) -> List[str]:
        """
        Delete Pending vouchers with their lines

        Removed from the store first; remote Delete of all lines (one call)
        then all headers (one call). Any failure restores the store.
        """
        self.ensure_role(actor, "delete")
        vouchers = self._require_pending(codes, "delete")
        doomed = [voucher.code for voucher in vouchers]

        async with self.store.optimistic(f"delete of {', '.join(doomed)}"):
            removed_lines = self.store.remove(doomed)
            if removed_lines:
                await self.client.request(self.line_table, TableAction.DELETE, rows=self._line_keys(removed_lines))
            await self.client.request(
                self.header_table,
                TableAction.DELETE,
                rows=[{"MaPhieu": code} for code in doomed],
            )

        logger.info(f"{actor.username} deleted {len(doomed)} voucher(s): {', '.join(doomed)}")
        return doomed

    async def bulk_import_vouchers(
        self,
        headers: List[Voucher],
        lines: List[VoucherLine],
        actor: Actor,
        reject_duplicates: bool = False,
    ) -> List[str]:
        """
        Add many vouchers and their lines in two batched calls

        Every header is forced to Pending. Codes already in the store are
        only refused when ``reject_duplicates`` is set; otherwise they must
        still be Pending and their header and whole line set are replaced.
        """
        if not headers:
            raise ValidationError("Không có phiếu để nhập!")

        imported = [header.model_copy(update={"status": VoucherStatus.PENDING}) for header in headers]
        codes = [voucher.code for voucher in imported]
        if len(set(codes)) != len(codes):
            raise ValidationError("Mã phiếu bị trùng trong dữ liệu nhập!", detail="Duplicate codes in import batch")

        if reject_duplicates:
            existing = self.find_existing_codes(codes)
            if existing:
                raise ValidationError(
                    f"Mã phiếu đã tồn tại: {', '.join(existing)}",
                    detail=f"{len(existing)} voucher code(s) already present",
                )
        replaced = self.find_existing_codes(codes)
        for code in replaced:
            self.ensure_pending(self.store.get(code), "import")

        grouped: Dict[str, List[VoucherLine]] = {code: [] for code in codes}
        for line in lines:
            if line.voucher_code not in grouped:
                raise ValidationError(
                    f"Chi tiết phiếu không thuộc phiếu nào: {line.voucher_code or line.material_code}",
                    detail=f"Line {line.line_code or line.material_code} references unknown voucher '{line.voucher_code}'",
                )
            grouped[line.voucher_code].append(line)
        prepared = {code: self._prepare_lines(code, group) for code, group in grouped.items()}
        all_lines = [line for group in prepared.values() for line in group]

        added = [voucher for voucher in imported if voucher.code not in replaced]
        edited = [voucher for voucher in imported if voucher.code in replaced]
        stale_lines = [line for line in self.store.lines if line.voucher_code in replaced]

        try:
            if edited:
                await self.client.request(
                    self.header_table, TableAction.EDIT, rows=[voucher.to_row() for voucher in edited]
                )
            if stale_lines:
                await self.client.request(self.line_table, TableAction.DELETE, rows=self._line_keys(stale_lines))
            if added:
                await self.client.request(
                    self.header_table, TableAction.ADD, rows=[voucher.to_row() for voucher in added]
                )
            if all_lines:
                await self.client.request(self.line_table, TableAction.ADD, rows=[line.to_row() for line in all_lines])
        except RemoteServiceError as e:
            logger.error(f"Import of {len(imported)} voucher(s) failed: {e.message} ({e.detail})")
            raise

        for voucher in imported:
            self.store.vouchers[voucher.code] = voucher
            self.store.replace_lines(voucher.code, prepared[voucher.code])
        if replaced:
            logger.info(f"Import replaced pending voucher(s): {', '.join(replaced)}")

        logger.info(f"{actor.username} imported {len(imported)} voucher(s) with {len(all_lines)} line(s)")
        return codes

    def find_existing_codes(self, codes: Iterable[str]) -> List[str]:
        return [code for code in OrderedDict.fromkeys(codes) if code in self.store]

    # Approval

    def _history_entry(self, action: ApprovalAction, actor: Actor, notes: Optional[str], now: datetime) -> str:
        verb = "Đã duyệt bởi" if action == ApprovalAction.APPROVE else "Từ chối bởi"
        entry = f"[{now.strftime(self.config.HISTORY_TIMESTAMP_FORMAT)}] {verb} {actor.username}"
        if notes:
            entry += f": {notes}"
        return entry

    async def _decide(
        self, codes: List[str], action: ApprovalAction, actor: Actor, notes: Optional[str]
    ) -> List[Voucher]:
        self.ensure_role(actor, action)
        vouchers = self._require_pending(codes, action)

        status = VoucherStatus.APPROVED if action == ApprovalAction.APPROVE else VoucherStatus.REJECTED
        now = datetime.now()
        entry = self._history_entry(action, actor, notes, now)

        decided = []
        for voucher in vouchers:
            history = f"{voucher.history}\n{entry}" if voucher.history else entry
            decided.append(
                voucher.model_copy(
                    update={"status": status, "warehouse_keeper": actor.username, "history": history}
                )
            )

        rows = [
            {
                "MaPhieu": voucher.code,
                "TrangThai": voucher.status.value,
                "NhanVienKho": voucher.warehouse_keeper,
                "LichSu": voucher.history,
            }
            for voucher in decided
        ]
        try:
            await self.client.request(self.header_table, TableAction.EDIT, rows=rows)
        except RemoteServiceError as e:
            logger.error(f"{action.value} of {', '.join(codes)} failed: {e.message} ({e.detail})")
            raise

        for voucher in decided:
            self.store.vouchers[voucher.code] = voucher
            logger.info(f"{actor.username} set {voucher.code} to {status.value}")
            self.dispatcher.dispatch(
                action.value,
                lambda code=voucher.code: build_approval_message(code, action, actor.username, notes, now),
            )
        return decided

    async def approve_voucher(self, code: str, actor: Actor, notes: Optional[str] = None) -> Voucher:
        return (await self._decide([code], ApprovalAction.APPROVE, actor, notes))[0]

    async def reject_voucher(self, code: str, actor: Actor, notes: Optional[str] = None) -> Voucher:
        return (await self._decide([code], ApprovalAction.REJECT, actor, notes))[0]

    async def bulk_approve_vouchers(self, codes: List[str], actor: Actor, notes: Optional[str] = None) -> List[Voucher]:
        return await self._decide(codes, ApprovalAction.APPROVE, actor, notes)

    async def bulk_reject_vouchers(self, codes: List[str], actor: Actor, notes: Optional[str] = None) -> List[Voucher]:
        return await self._decide(codes, ApprovalAction.REJECT, actor, notes)

    # Reads

    def _with_lines(self, voucher: Voucher) -> VoucherWithLines:
        lines = lines_for_voucher(self.store.lines, voucher.code)
        return VoucherWithLines(**voucher.model_dump(), lines=lines, totals=calculate_totals(lines))

    def get_voucher_with_lines(self, code: str) -> Optional[VoucherWithLines]:
        voucher = self.store.get(code)
        if voucher is None:
            return None
        return self._with_lines(voucher)

    def list_vouchers(self, criteria: Optional[VoucherFilter] = None) -> List[Voucher]:
        return filter_vouchers(self.store.vouchers.values(), criteria or VoucherFilter())

    def list_vouchers_with_lines(self, criteria: Optional[VoucherFilter] = None) -> List[VoucherWithLines]:
        return [self._with_lines(voucher) for voucher in self.list_vouchers(criteria)]

    def totals_for(self, code: str) -> VoucherTotals:
        self._require(code)
        return calculate_totals(lines_for_voucher(self.store.lines, code))

    def stats(self) -> VoucherStats:
        return status_stats(self.store.vouchers.values())

    def print_payload(self, code: str) -> dict:
        voucher = self._require(code)
        return build_print_payload(voucher, lines_for_voucher(self.store.lines, code))

    async def refresh(self) -> VoucherStats:
        """Reload both collections from remote Find; malformed rows are skipped"""
        header_rows = await self.client.request(self.header_table, TableAction.FIND)
        line_rows = await self.client.request(self.line_table, TableAction.FIND)

        vouchers = []
        for row in header_rows:
            try:
                vouchers.append(Voucher.model_validate(row))
            except PydanticValidationError as e:
                logger.warning(f"Skipping {self.header_table} row {row.get('MaPhieu')!r}: {e.error_count()} error(s)")

        lines = []
        for row in line_rows:
            try:
                lines.append(VoucherLine.model_validate(row))
            except PydanticValidationError as e:
                logger.warning(f"Skipping {self.line_table} row {row.get('MaPhieuDe')!r}: {e.error_count()} error(s)")

        self.store.replace(vouchers, lines)
        logger.info(f"Loaded {len(vouchers)} voucher(s) and {len(lines)} line(s)")
        return self.stats()
