"""
Utility usage import and monthly usage report.

CSV import
----------
Header row, then one row per room and month::

    RoomNumber,WaterUsage,ElectricityUsage,BillingMonth[,WaterRate[,ElectricityRate]]

``BillingMonth`` is ``YYYY-MM``. Rates default to the configured import
rates. For each row the room's active contract is found, the month's
invoice is found or created (dated the 1st, due on the configured day at
23:59 UTC), the usage is written and totals are recomputed through the
invoice calculator. Each row runs in its own SAVEPOINT: a bad row is
rolled back and reported as ``Line N: reason`` while the others are kept.

Monthly report
--------------
``monthly_usage_report`` lists each invoice created in a month in the
fixed export column order, followed by a grand-total row.
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Iterable, TextIO
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from rental_engines.amounts import ZERO
from rental_engines.invoice_calculation import ChargeInput, calculate_charges
from rental_kernel.domain.clock import Clock
from rental_kernel.exceptions import RentalBillingError, UsageImportError
from rental_kernel.logging_config import get_logger
from rental_kernel.services.base import BaseService
from rental_modules.billing.addons import AddonFeeResolver
from rental_modules.billing.config import BillingConfig
from rental_modules.billing.contracts import ContractResolver
from rental_modules.billing.models import ImportSummary, UsageReportRow
from rental_modules.billing.orm import ContractModel, InvoiceModel, RoomModel
from rental_modules.billing.payment_ledger import PaymentLedger

logger = get_logger("modules.billing.usage")

_REQUIRED_COLUMNS = 4


@dataclass(frozen=True)
class UsageRow:
    """One parsed CSV row."""
    line_number: int
    room_number: str
    water_units: Decimal
    electricity_units: Decimal
    year: int
    month: int
    water_rate: Decimal
    electricity_rate: Decimal


def month_bounds(year: int, month: int) -> tuple[datetime, datetime]:
    """Start of ``year-month`` and start of the following month, in UTC."""
    start = datetime(year, month, 1, tzinfo=timezone.utc)
    if month == 12:
        end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(year, month + 1, 1, tzinfo=timezone.utc)
    return start, end


class UsageImporter(BaseService):
    """Applies metered water/electricity usage to monthly invoices."""

    def __init__(
        self,
        session: Session,
        config: BillingConfig | None = None,
        clock: Clock | None = None,
        ledger: PaymentLedger | None = None,
    ):
        super().__init__(session, clock)
        self._config = config or BillingConfig.with_defaults()
        self._contracts = ContractResolver(session)
        self._addons = AddonFeeResolver(session)
        self._ledger = ledger or PaymentLedger(session, self._config, self._clock)

    def import_csv(self, source: str | Path | TextIO) -> ImportSummary:
        """
        Import a usage CSV from a path, a file object, or CSV text.

        A ``str`` containing a newline is treated as CSV text, any other
        ``str`` as a path.
        """
        if isinstance(source, Path) or (isinstance(source, str) and "\n" not in source):
            with open(source, encoding="utf-8-sig", newline="") as f:
                return self.import_lines(f)
        if isinstance(source, str):
            return self.import_lines(io.StringIO(source))
        return self.import_lines(source)

    def import_lines(self, lines: Iterable[str]) -> ImportSummary:
        reader = csv.reader(lines)
        header = next(reader, None)
        logger.info("usage_import_started", extra={"header": header})

        successes = 0
        errors: list[str] = []
        invoice_ids: list[UUID] = []

        for row in reader:
            line_number = reader.line_num
            if not any(cell.strip() for cell in row):
                continue
            try:
                with self.session.begin_nested():
                    usage = self._parse_row(row, line_number)
                    invoice_ids.append(self._apply(usage))
                successes += 1
            except (RentalBillingError, ValueError) as exc:
                message = str(exc) if isinstance(exc, UsageImportError) else f"Line {line_number}: {exc}"
                errors.append(message)
                logger.warning("usage_row_failed", extra={
                    "line_number": line_number,
                    "error": str(exc),
                })

        summary = ImportSummary(
            success_count=successes,
            error_count=len(errors),
            errors=tuple(errors),
            invoice_ids=tuple(invoice_ids),
        )
        logger.info("usage_import_completed", extra={
            "success_count": summary.success_count,
            "error_count": summary.error_count,
        })
        return summary

    def _parse_row(self, row: list[str], line_number: int) -> UsageRow:
        if len(row) < _REQUIRED_COLUMNS:
            raise UsageImportError(
                line_number,
                "Invalid CSV format. Expected at least 4 columns: "
                "RoomNumber,WaterUsage,ElectricityUsage,BillingMonth",
            )
        cells = [cell.strip() for cell in row]
        try:
            water_units = Decimal(cells[1])
            electricity_units = Decimal(cells[2])
            water_rate = Decimal(cells[4]) if len(cells) > 4 and cells[4] else self._config.import_water_rate
            electricity_rate = (
                Decimal(cells[5]) if len(cells) > 5 and cells[5]
                else self._config.import_electricity_rate
            )
        except InvalidOperation:
            raise UsageImportError(line_number, "Invalid number format in CSV data") from None
        if not all(
            v.is_finite() for v in (water_units, electricity_units, water_rate, electricity_rate)
        ):
            raise UsageImportError(line_number, "Invalid number format in CSV data")

        parts = cells[3].split("-")
        if len(parts) != 2 or not all(p.isdigit() for p in parts) or not 1 <= int(parts[1]) <= 12:
            raise UsageImportError(
                line_number, f"Invalid billing month {cells[3]!r}. Expected YYYY-MM",
            )

        return UsageRow(
            line_number=line_number,
            room_number=cells[0],
            water_units=water_units,
            electricity_units=electricity_units,
            year=int(parts[0]),
            month=int(parts[1]),
            water_rate=water_rate,
            electricity_rate=electricity_rate,
        )

    def _apply(self, usage: UsageRow) -> UUID:
        room = self.session.scalars(
            select(RoomModel).where(RoomModel.room_number == usage.room_number).limit(1)
        ).first()
        if room is None:
            raise UsageImportError(usage.line_number, f"Room {usage.room_number} not found")
        contract = self._contracts.active_for_room(room.id)
        if contract is None:
            raise UsageImportError(
                usage.line_number, f"No active contract for room {usage.room_number}",
            )

        invoice = self._find_or_create_month_invoice(contract, room, usage)
        breakdown = calculate_charges(charge_input=ChargeInput(
            rent=invoice.requested_rent,
            water_units=usage.water_units,
            water_rate=usage.water_rate,
            electricity_units=usage.electricity_units,
            electricity_rate=usage.electricity_rate,
            addon_amount=invoice.addon_amount,
            penalty=invoice.penalty_total,
            previous_balance=invoice.previous_balance,
        ))
        invoice.apply_breakdown(breakdown)
        self._ledger.refresh_invoice(invoice)

        logger.info("usage_applied", extra={
            "invoice_id": str(invoice.id),
            "room_number": usage.room_number,
            "billing_month": f"{usage.year:04d}-{usage.month:02d}",
            "water": str(breakdown.water),
            "electricity": str(breakdown.electricity),
            "net_amount": str(breakdown.net_amount),
        })
        return invoice.id

    def _find_or_create_month_invoice(
        self,
        contract: ContractModel,
        room: RoomModel,
        usage: UsageRow,
    ) -> InvoiceModel:
        start, end = month_bounds(usage.year, usage.month)
        existing = self.session.scalars(
            select(InvoiceModel.id)
            .where(InvoiceModel.contract_id == contract.id)
            .where(InvoiceModel.create_date >= start)
            .where(InvoiceModel.create_date < end)
            .order_by(InvoiceModel.create_date, InvoiceModel.id)
            .limit(1)
        ).first()
        if existing is not None:
            return self._ledger.lock_invoice(existing)

        breakdown = calculate_charges(charge_input=ChargeInput(
            rent=contract.rent_amount,
            addon_amount=self._addons.resolve_for_room(room.id),
        ))
        invoice = InvoiceModel.from_breakdown(
            contract.id,
            breakdown,
            create_date=start,
            due_date=datetime(
                usage.year, usage.month, self._config.import_due_day, 23, 59,
                tzinfo=timezone.utc,
            ),
            created_by=self._config.system_actor,
            requested_floor=room.floor,
            requested_room=room.room_number,
        )
        self.session.add(invoice)
        self._flush("Invoice", invoice.id)
        logger.info("usage_month_invoice_created", extra={
            "invoice_id": str(invoice.id),
            "contract_id": str(contract.id),
            "billing_month": f"{usage.year:04d}-{usage.month:02d}",
        })
        return invoice


def monthly_usage_report(
    session: Session,
    year: int,
    month: int,
) -> tuple[UsageReportRow, ...]:
    """
    Usage rows for invoices created in ``year-month``, then a grand-total row.

    Rows are ordered by room number. ``total_amount`` is the invoice's net
    amount.
    """
    start, end = month_bounds(year, month)
    stmt = (
        select(InvoiceModel, ContractModel, RoomModel)
        .join(ContractModel, InvoiceModel.contract_id == ContractModel.id)
        .join(RoomModel, ContractModel.room_id == RoomModel.id)
        .where(InvoiceModel.create_date >= start)
        .where(InvoiceModel.create_date < end)
        .order_by(RoomModel.room_number, InvoiceModel.create_date)
    )

    rows: list[UsageReportRow] = []
    for invoice, contract, room in session.execute(stmt):
        rows.append(UsageReportRow(
            room=room.room_number,
            tenant=contract.tenant_name,
            package=contract.package_name or "",
            rent=invoice.requested_rent,
            water_units=invoice.water_units,
            water=invoice.water_amount,
            electricity_units=invoice.electricity_units,
            electricity=invoice.electricity_amount,
            total_amount=invoice.net_amount,
        ))

    rows.append(UsageReportRow(
        room="Total",
        tenant="",
        package="",
        rent=sum((r.rent for r in rows), ZERO),
        water_units=sum((r.water_units for r in rows), ZERO),
        water=sum((r.water for r in rows), ZERO),
        electricity_units=sum((r.electricity_units for r in rows), ZERO),
        electricity=sum((r.electricity for r in rows), ZERO),
        total_amount=sum((r.total_amount for r in rows), ZERO),
    ))
    logger.info("usage_report_built", extra={
        "billing_month": f"{year:04d}-{month:02d}",
        "row_count": len(rows) - 1,
    })
    return tuple(rows)
