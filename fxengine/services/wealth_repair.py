"""
Detection and repair of inverted USD conversions in wealth snapshots.

Historical snapshots were written with balance * rate instead of balance / rate
for fiat accounts. With fiat rates in the hundreds or thousands that inflates
balance_in_usd by orders of magnitude, so a snapshot is flagged when its stored
USD value exceeds today's estimate by more than CORRUPTION_THRESHOLD_MULTIPLIER.

The estimate uses the current best rate, not the historical one; the multiplier
absorbs ordinary rate drift.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from fxengine.config import settings
from fxengine.models.wealth import AssetAccount, AssetSnapshot
from fxengine.services import rate_store
from fxengine.services.conversion import (
    BASE_CURRENCY,
    CurrencyClassifier,
    default_classifier,
    round_money,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class SnapshotRecord:
    id: str
    currency: str
    balance: Decimal
    balance_in_usd: Decimal
    date: Optional[datetime] = None


@dataclass(frozen=True)
class Finding:
    snapshot_id: str
    currency: str
    balance: Decimal
    recorded_usd: Decimal
    corrected_usd: Decimal
    date: Optional[datetime] = None

    def audit_line(self, dry_run: bool = True) -> str:
        action = "CORRUPTED" if dry_run else "CORRECTING"
        day = self.date.date().isoformat() if self.date else "-"
        return (
            f"[{action}] Snapshot {self.snapshot_id} [{self.currency}] {day}: "
            f"Recorded={self.recorded_usd:.2f} USD, Corrected={self.corrected_usd:.2f} USD "
            f"(Balance={self.balance})"
        )


@dataclass
class RepairReport:
    scanned: int = 0
    flagged: int = 0
    skipped: int = 0
    dry_run: bool = True
    findings: list[Finding] = field(default_factory=list)

    def summary_lines(self) -> list[str]:
        verb = "identified" if self.dry_run else "fixed"
        return [
            f"Total scanned: {self.scanned}",
            f"Total {verb}: {self.flagged}",
            f"Skipped (no rate): {self.skipped}",
        ]


def estimate_usd(
    balance: Decimal,
    currency: str,
    rate: Decimal,
    classifier: Optional[CurrencyClassifier] = None,
) -> Decimal:
    """Unrounded USD value of a balance at the given stored rate."""
    cls = classifier if classifier is not None else default_classifier
    if cls.is_crypto(currency):
        return balance * rate
    return balance / rate


def is_corrupted(recorded_usd: Decimal, estimated_usd: Decimal, multiplier: Decimal) -> bool:
    return recorded_usd > estimated_usd * multiplier


def detect_corruption(
    snapshots: Iterable[SnapshotRecord],
    rates: dict[str, Decimal],
    classifier: Optional[CurrencyClassifier] = None,
    multiplier: Optional[float] = None,
) -> RepairReport:
    """Scan snapshots against current rates. Pure; nothing is written."""
    threshold = Decimal(str(
        multiplier if multiplier is not None else settings.CORRUPTION_THRESHOLD_MULTIPLIER
    ))
    report = RepairReport()

    for snap in snapshots:
        report.scanned += 1
        if snap.currency == BASE_CURRENCY:
            continue

        rate = rates.get(snap.currency)
        if not rate or rate <= 0:
            logger.warning(
                "wealth_repair_skipped_no_rate",
                snapshot_id=snap.id,
                currency=snap.currency,
            )
            report.skipped += 1
            continue

        estimated = estimate_usd(snap.balance, snap.currency, rate, classifier)
        if is_corrupted(snap.balance_in_usd, estimated, threshold):
            report.flagged += 1
            report.findings.append(
                Finding(
                    snapshot_id=snap.id,
                    currency=snap.currency,
                    balance=snap.balance,
                    recorded_usd=snap.balance_in_usd,
                    corrected_usd=round_money(estimated),
                    date=snap.date,
                )
            )

    return report


async def build_rate_map(
    db: AsyncSession, currencies: Iterable[str], as_of: Optional[datetime] = None
) -> dict[str, Decimal]:
    rates = {BASE_CURRENCY: Decimal("1")}
    for currency in sorted(set(currencies)):
        if currency == BASE_CURRENCY:
            continue
        best = await rate_store.get_best_exchange_rate(db, currency, as_of)
        if best is not None:
            rates[currency] = best.rate
    return rates


async def repair_snapshots(
    db: AsyncSession,
    dry_run: bool = True,
    as_of: Optional[datetime] = None,
    multiplier: Optional[float] = None,
) -> RepairReport:
    """
    Scan every asset snapshot and, unless dry_run, overwrite flagged balance_in_usd.

    The caller owns the transaction and commits.
    """
    as_of = as_of or rate_store.utc_midnight()

    account_rows = await db.execute(select(AssetAccount.currency).distinct())
    rates = await build_rate_map(db, [row[0] for row in account_rows.all()], as_of)
    classifier = await rate_store.load_classifier(db)

    result = await db.execute(
        select(
            AssetSnapshot.id,
            AssetSnapshot.date,
            AssetSnapshot.balance,
            AssetSnapshot.balance_in_usd,
            AssetAccount.currency,
        ).join(AssetAccount, AssetSnapshot.account_id == AssetAccount.id)
    )
    snapshots = [
        SnapshotRecord(
            id=str(snap_id),
            currency=currency,
            balance=Decimal(str(balance)),
            balance_in_usd=Decimal(str(balance_in_usd)),
            date=snap_date,
        )
        for snap_id, snap_date, balance, balance_in_usd, currency in result.all()
    ]

    report = detect_corruption(snapshots, rates, classifier, multiplier)
    report.dry_run = dry_run

    for finding in report.findings:
        logger.info(
            "wealth_snapshot_flagged",
            snapshot_id=finding.snapshot_id,
            currency=finding.currency,
            recorded_usd=str(finding.recorded_usd),
            corrected_usd=str(finding.corrected_usd),
        )
        if not dry_run:
            await db.execute(
                update(AssetSnapshot)
                .where(AssetSnapshot.id == uuid.UUID(finding.snapshot_id))
                .values(balance_in_usd=finding.corrected_usd)
            )

    logger.info(
        "wealth_repair_complete",
        scanned=report.scanned,
        flagged=report.flagged,
        skipped=report.skipped,
        dry_run=dry_run,
    )
    return report
