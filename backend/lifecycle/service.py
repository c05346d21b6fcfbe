"""
Lifecycle Service — read-modify-write orchestration over the shipment store.

Every state change follows the same cycle:
  1. take the shipment's in-process lock
  2. load the row (FOR UPDATE where the database supports it)
  3. apply the event to an in-memory copy via the state machine
  4. write the copy back; the version column turns the UPDATE into a
     compare-and-swap
  5. append activity, commit, release the lock
  6. publish the lifecycle event outside the critical section

Guard failures roll back and leave the stored record untouched. Batch
operations isolate failures per shipment.
"""

from __future__ import annotations

import copy
from dataclasses import fields
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.exc import DataError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from db.models import Shipment, ShipmentActivity
from lifecycle.errors import (
    ConcurrentModificationError,
    LifecycleError,
    ShipmentNotFoundError,
    ShipmentValidationError,
)
from lifecycle.locks import ShipmentLocks, shipment_locks
from lifecycle.metrics import MetricsSnapshot, compute_metrics, parse_received_at
from lifecycle.notifications import EventPublisher
from lifecycle.phases import COMPLIANCE, COMPLIANCE_OK, MONITORING, normalize_phase_progress
from lifecycle.policy import DEFAULT_POLICY, LifecyclePolicy
from lifecycle.schemas import ShipmentIntake, parse_intake
from lifecycle.shipment import ShipmentRecord, as_utc
from lifecycle.state_machine import (
    ARRIVAL_CONFIRMED,
    BILLING_PROCESSED,
    COMPLIANCE_CHECK,
    COMPLIANCE_FLAG,
    CREATED,
    ETA_UPDATED,
    MONITORING_HEARTBEAT,
    RELEASED,
    ShipmentEvent,
    apply_event,
)

logger = structlog.get_logger()

RECORD_FIELDS = tuple(f.name for f in fields(ShipmentRecord))
_DATETIME_FIELDS = (
    "eta_planned",
    "eta_current",
    "eta",
    "arrival_date",
    "promised_date",
    "created_at",
    "updated_at",
)
_READ_ONLY_FIELDS = {"shipment_id", "version", "created_at"}


# ─── Row ↔ record mapping ───────────────────────────────────────────────────


def record_from_row(row: Shipment) -> ShipmentRecord:
    values = {name: copy.deepcopy(getattr(row, name)) for name in RECORD_FIELDS}
    for name in _DATETIME_FIELDS:
        values[name] = as_utc(values[name])
    values["phase_progress"] = normalize_phase_progress(values["phase_progress"])
    values["compliance_issues"] = list(values["compliance_issues"] or [])
    values["documents"] = list(values["documents"] or [])
    values["isf_filed"] = bool(values["isf_filed"])
    values["version"] = values["version"] or 0
    return ShipmentRecord(**values)


def _write_record(row: Shipment, record: ShipmentRecord) -> None:
    for name in RECORD_FIELDS:
        if name in _READ_ONLY_FIELDS:
            continue
        value = getattr(record, name)
        if name in _DATETIME_FIELDS:
            value = as_utc(value)
        setattr(row, name, copy.deepcopy(value))


def _display_key(record: ShipmentRecord) -> str:
    return record.container_no or record.shipment_id


def _activity_entries(
    before: ShipmentRecord | None,
    after: ShipmentRecord,
    event: ShipmentEvent,
) -> list[tuple[str, str]]:
    """(event_type, message) pairs worth recording for this transition."""
    key = _display_key(after)
    entries: list[tuple[str, str]] = []

    if event.event_type == CREATED:
        if after.source == "email":
            entries.append((CREATED, f"[Intake] Processed arrival notice from email for container {key}."))
        else:
            entries.append((CREATED, f"[Intake] Registered shipment {key}."))

    if event.event_type in (CREATED, COMPLIANCE_CHECK):
        changed = (
            before is None
            or before.compliance_status != after.compliance_status
            or before.current_phase != after.current_phase
        )
        if changed:
            if after.compliance_status == COMPLIANCE_OK:
                message = f"[Compliance] Cleared shipment {key} for monitoring."
            else:
                message = f"[Compliance] Found compliance issues for {key}: {after.compliance_issues[0]}."
            entries.append((COMPLIANCE_CHECK, message))
    elif event.event_type == COMPLIANCE_FLAG:
        entries.append((COMPLIANCE_FLAG, f"[Compliance] Shipment {key} flagged: {after.compliance_issues[-1]}."))
    elif event.event_type == ETA_UPDATED:
        variance = after.eta_variance_hours
        variance_text = f"{variance:+.1f}h" if variance is not None else "n/a"
        entries.append(
            (ETA_UPDATED, f"[Monitoring] ETA updated for {key} (variance {variance_text}, {after.monitoring_status}).")
        )
    elif event.event_type == MONITORING_HEARTBEAT:
        if before is not None and before.monitoring_status != after.monitoring_status:
            entries.append(
                (
                    MONITORING_HEARTBEAT,
                    f"[Monitoring] Risk for {key} changed from {before.monitoring_status} to {after.monitoring_status}.",
                )
            )
    elif event.event_type == ARRIVAL_CONFIRMED:
        entries.append((ARRIVAL_CONFIRMED, f"[Arrival] Arrival confirmed for {key}; delivery in progress."))
    elif event.event_type == RELEASED:
        entries.append((RELEASED, f"[Billing] Shipment {key} released for billing."))
    elif event.event_type == BILLING_PROCESSED:
        entries.append((BILLING_PROCESSED, f"[Billing] Invoice processed for {key}; shipment closed."))

    return entries


def _add_activity(
    db: AsyncSession,
    before: ShipmentRecord | None,
    after: ShipmentRecord,
    event: ShipmentEvent,
) -> int:
    from_phase = before.current_phase if before is not None else None
    entries = _activity_entries(before, after, event)
    for event_type, message in entries:
        db.add(
            ShipmentActivity(
                shipment_id=after.shipment_id,
                event_type=event_type,
                from_phase=from_phase,
                to_phase=after.current_phase,
                message=message,
                created_at=event.occurred_at,
            )
        )
    return len(entries)


# ─── Store access ───────────────────────────────────────────────────────────


async def _load_row(db: AsyncSession, shipment_id: str, *, for_update: bool = False) -> Shipment | None:
    query = select(Shipment).where(Shipment.shipment_id == shipment_id).execution_options(populate_existing=True)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def _commit(db: AsyncSession, shipment_id: str) -> None:
    try:
        await db.commit()
    except (StaleDataError, IntegrityError) as exc:
        await db.rollback()
        logger.warning("lifecycle.conflict", shipment_id=shipment_id, error=str(exc))
        raise ConcurrentModificationError(shipment_id) from exc
    except DataError as exc:
        await db.rollback()
        logger.warning("lifecycle.rejected_by_store", shipment_id=shipment_id, error=str(exc.orig))
        raise ShipmentValidationError(
            "Shipment record rejected by the store", errors=[str(exc.orig)], shipment_id=shipment_id
        ) from exc


async def _notify(
    publisher: EventPublisher | None,
    shipment: ShipmentRecord,
    event_type: str,
    from_phase: str | None,
) -> None:
    if publisher is None:
        return
    await publisher.publish(shipment, event_type, from_phase)


async def get_shipment(db: AsyncSession, shipment_id: str) -> ShipmentRecord:
    row = await _load_row(db, shipment_id)
    if row is None:
        raise ShipmentNotFoundError(shipment_id)
    return record_from_row(row)


async def list_shipments(db: AsyncSession, phase: str | None = None) -> list[ShipmentRecord]:
    query = select(Shipment)
    if phase:
        query = query.where(Shipment.current_phase == phase)
    result = await db.execute(query.order_by(Shipment.created_at, Shipment.shipment_id))
    return [record_from_row(row) for row in result.scalars().all()]


# ─── Intake ─────────────────────────────────────────────────────────────────


def _apply_updates(record: ShipmentRecord, updates: dict[str, Any]) -> None:
    for name, value in updates.items():
        if name in ("documents", "isf_filed") and value is None:
            continue
        if name == "email_metadata":
            # The first e-mail that delivered the shipment stays its provenance.
            if record.email_metadata:
                continue
            record.email_metadata = value
            continue
        if name == "source" and record.email_metadata and "email_metadata" not in updates:
            continue
        setattr(record, name, value)


async def upsert_shipment(
    db: AsyncSession,
    payload: ShipmentIntake | dict[str, Any],
    *,
    policy: LifecyclePolicy = DEFAULT_POLICY,
    publisher: EventPublisher | None = None,
    locks: ShipmentLocks = shipment_locks,
) -> tuple[ShipmentRecord, bool]:
    """
    Create or update a shipment delivered by ingestion.

    New shipments go through intake and their first compliance check.
    Updates overwrite only the supplied fields and re-run compliance.
    Returns (record, created).
    """
    intake = payload if isinstance(payload, ShipmentIntake) else parse_intake(payload)
    updates = intake.field_updates()
    shipment_id = intake.shipment_id
    now = datetime.now(timezone.utc)

    async with locks.for_shipment(shipment_id):
        row = await _load_row(db, shipment_id, for_update=True)
        created = row is None

        if created:
            before = None
            draft = ShipmentRecord(shipment_id=shipment_id, created_at=now)
            _apply_updates(draft, updates)
            event = ShipmentEvent(CREATED, occurred_at=now)
            row = Shipment(shipment_id=shipment_id, created_at=now)
            db.add(row)
        else:
            before = record_from_row(row)
            draft = before.clone()
            _apply_updates(draft, updates)
            event = ShipmentEvent(COMPLIANCE_CHECK, occurred_at=now)

        try:
            updated = apply_event(draft, event, policy)
        except LifecycleError:
            await db.rollback()
            raise

        _write_record(row, updated)
        _add_activity(db, before, updated, event)
        await _commit(db, shipment_id)
        updated.version = row.version

    logger.info(
        "shipment.upserted",
        shipment_id=shipment_id,
        created=created,
        phase=updated.current_phase,
        compliance_status=updated.compliance_status,
    )
    await _notify(publisher, updated, event.event_type, before.current_phase if before else None)
    return updated, created


# ─── Events ─────────────────────────────────────────────────────────────────


async def dispatch_event(
    db: AsyncSession,
    shipment_id: str,
    event: ShipmentEvent,
    *,
    policy: LifecyclePolicy = DEFAULT_POLICY,
    publisher: EventPublisher | None = None,
    locks: ShipmentLocks = shipment_locks,
) -> ShipmentRecord:
    """Apply ``event`` to the stored shipment atomically and return the new state."""
    async with locks.for_shipment(shipment_id):
        row = await _load_row(db, shipment_id, for_update=True)
        if row is None:
            await db.rollback()
            raise ShipmentNotFoundError(shipment_id)

        before = record_from_row(row)
        try:
            updated = apply_event(before, event, policy)
        except LifecycleError:
            await db.rollback()
            raise

        unchanged = (
            event.event_type == MONITORING_HEARTBEAT
            and updated.monitoring_status == before.monitoring_status
            and updated.eta_variance_hours == before.eta_variance_hours
        )
        if unchanged:
            await db.rollback()
            return before

        _write_record(row, updated)
        _add_activity(db, before, updated, event)
        await _commit(db, shipment_id)
        updated.version = row.version

    await _notify(publisher, updated, event.event_type, before.current_phase)
    return updated


async def run_compliance_check_for(
    db: AsyncSession,
    shipment_id: str,
    *,
    policy: LifecyclePolicy = DEFAULT_POLICY,
    publisher: EventPublisher | None = None,
    locks: ShipmentLocks = shipment_locks,
) -> ShipmentRecord:
    return await dispatch_event(
        db, shipment_id, ShipmentEvent(COMPLIANCE_CHECK), policy=policy, publisher=publisher, locks=locks
    )


async def _dispatch_many(
    db: AsyncSession,
    shipment_ids: list[str],
    event_type: str,
    *,
    policy: LifecyclePolicy,
    publisher: EventPublisher | None,
    locks: ShipmentLocks,
) -> dict[str, Any]:
    updated = 0
    failed: list[dict[str, str]] = []
    for shipment_id in shipment_ids:
        try:
            await dispatch_event(
                db, shipment_id, ShipmentEvent(event_type), policy=policy, publisher=publisher, locks=locks
            )
            updated += 1
        except LifecycleError as exc:
            logger.warning("lifecycle.batch_item_failed", shipment_id=shipment_id, event_type=event_type, error=exc.code)
            failed.append({"shipment_id": shipment_id, "error": exc.code, "detail": exc.message})
    return {"ok": not failed, "matched": len(shipment_ids), "updated": updated, "failed": failed}


async def _ids_in_phase(db: AsyncSession, phase: str) -> list[str]:
    result = await db.execute(
        select(Shipment.shipment_id).where(Shipment.current_phase == phase).order_by(Shipment.shipment_id)
    )
    ids = [row.shipment_id for row in result.all()]
    await db.rollback()
    return ids


async def recheck_compliance(
    db: AsyncSession,
    *,
    policy: LifecyclePolicy = DEFAULT_POLICY,
    publisher: EventPublisher | None = None,
    locks: ShipmentLocks = shipment_locks,
) -> dict[str, Any]:
    """Re-run compliance for every shipment currently held in the compliance phase."""
    ids = await _ids_in_phase(db, COMPLIANCE)
    return await _dispatch_many(db, ids, COMPLIANCE_CHECK, policy=policy, publisher=publisher, locks=locks)


async def advance_phase_batch(
    db: AsyncSession,
    phase: str,
    event_type: str,
    *,
    policy: LifecyclePolicy = DEFAULT_POLICY,
    publisher: EventPublisher | None = None,
    locks: ShipmentLocks = shipment_locks,
) -> dict[str, Any]:
    """Apply ``event_type`` to every shipment whose pointer is at ``phase``."""
    ids = await _ids_in_phase(db, phase)
    return await _dispatch_many(db, ids, event_type, policy=policy, publisher=publisher, locks=locks)


async def refresh_monitoring_risk(
    db: AsyncSession,
    *,
    policy: LifecyclePolicy = DEFAULT_POLICY,
    publisher: EventPublisher | None = None,
    locks: ShipmentLocks = shipment_locks,
) -> dict[str, Any]:
    """Monitoring heartbeat: reclassify risk for every shipment in monitoring."""
    ids = await _ids_in_phase(db, MONITORING)
    return await _dispatch_many(db, ids, MONITORING_HEARTBEAT, policy=policy, publisher=publisher, locks=locks)


# ─── Read models ────────────────────────────────────────────────────────────


async def snapshot_metrics(
    db: AsyncSession,
    *,
    policy: LifecyclePolicy = DEFAULT_POLICY,
    now: datetime | None = None,
) -> MetricsSnapshot:
    """Compute fleet metrics over a single point-in-time read of all shipments."""
    result = await db.execute(select(Shipment))
    records = []
    for row in result.scalars().all():
        try:
            records.append(record_from_row(row))
        except (TypeError, ValueError) as exc:
            logger.warning("metrics.record_skipped", shipment_id=row.shipment_id, error=str(exc))
    return compute_metrics(records, now=now, completion_offset_seconds=policy.completion_offset_seconds)


async def recent_activity(
    db: AsyncSession,
    *,
    limit: int = 50,
    shipment_id: str | None = None,
) -> list[ShipmentActivity]:
    query = select(ShipmentActivity)
    if shipment_id:
        query = query.where(ShipmentActivity.shipment_id == shipment_id)
    query = query.order_by(ShipmentActivity.created_at.desc()).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


async def email_activity(db: AsyncSession, *, limit: int = 20) -> list[dict[str, Any]]:
    """Most recent e-mail sourced shipments, newest message first."""
    result = await db.execute(select(Shipment).where(Shipment.source == "email"))
    rows = [row for row in result.scalars().all() if row.email_metadata]

    def _received(row: Shipment) -> datetime:
        try:
            received_at = parse_received_at(row.email_metadata.get("received_at"))
        except ValueError:
            received_at = None
        return received_at or _OLDEST

    rows.sort(key=_received, reverse=True)
    return [
        {
            "shipment_id": row.shipment_id,
            "container_no": row.container_no,
            "subject": row.email_metadata.get("subject"),
            "sender": row.email_metadata.get("sender"),
            "received_at": row.email_metadata.get("received_at"),
            "attachment_name": row.email_metadata.get("attachment_name"),
            "attachment_size": row.email_metadata.get("attachment_size"),
            "current_phase": row.current_phase,
        }
        for row in rows[:limit]
    ]

