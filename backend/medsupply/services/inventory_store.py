"""
Inventory Store - authoritative collection of supply records.

RESPONSIBILITIES:
- Validate caller input and issue ids (never reused, also across restarts)
- Classify risk on every write, using the injected clock
- Serve live views (all, by id, search, filters, critical, expiring, counts)
- Push each applied change to the durable repository

CONSISTENCY MODEL:
- Writes are serialized by a re-entrant writer lock, which also keeps
  durable writes in commit order
- A separate state lock covers only the in-memory swap and view refresh, so
  opening or reading a view never waits on repository I/O
- The record map is swapped copy-on-write, so a reader sees the map from
  before or after a write, never half of one
- Views are re-evaluated and notified before the durable write is attempted
- A failed durable write leaves the in-memory change in place and is reported
  as a PersistenceWarning, not an exception

Stored risk levels are not refreshed as time passes; reclassify() is the
explicit way to bring them up to date.

Usage:
    store = InventoryStore(SqlAlchemySupplyRepository(), SystemClock())
    item = store.insert({"name": "Gauze", "category": "PPE", ...})
    with store.critical_items() as view:
        view.subscribe(render)
"""
import logging
import threading
import warnings
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import Any, Callable, Iterable, List, Mapping, Optional, Tuple, Union

import pydantic

from medsupply.core.audit import AuditLog
from medsupply.core.clock import Clock, SystemClock, ensure_utc
from medsupply.core.config import settings
from medsupply.core.exceptions import NotFoundError, PersistenceWarning, ValidationError
from medsupply.schemas.supply import RiskSummary, SupplyDraft, SupplyRecord
from medsupply.services.live_view import LiveView
from medsupply.services.risk_classifier import RiskLevel, classify
from medsupply.services.supply_repository import SupplyRepository

logger = logging.getLogger(__name__)

DraftInput = Union[SupplyDraft, Mapping[str, Any]]
Records = Mapping[int, SupplyRecord]


def _by_name(records: Iterable[SupplyRecord]) -> Tuple[SupplyRecord, ...]:
    # Case-sensitive name order, id breaks ties
    return tuple(sorted(records, key=lambda r: (r.name, r.id)))


def _describe(error: pydantic.ValidationError) -> str:
    parts = []
    for err in error.errors():
        field = ".".join(str(loc) for loc in err["loc"])
        parts.append(f"{field}: {err['msg']}" if field else err["msg"])
    return "; ".join(parts)


def _validate_draft(data: DraftInput) -> SupplyDraft:
    if isinstance(data, SupplyDraft):
        return data
    if isinstance(data, pydantic.BaseModel):
        data = data.model_dump()
    try:
        return SupplyDraft.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError(_describe(e)) from e


def _validate_quantity(quantity: Any) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("current_quantity must be an integer")
    if quantity < 0:
        raise ValidationError("current_quantity cannot be negative")
    return quantity


def _coerce_risk(risk_level: Union[RiskLevel, str, None]) -> Optional[RiskLevel]:
    if risk_level is None:
        return None
    try:
        return RiskLevel(risk_level)
    except ValueError:
        allowed = ", ".join(level.value for level in RiskLevel)
        raise ValidationError(f"risk_level must be one of: {allowed}") from None


def _record_from_draft(record_id: int, draft: SupplyDraft, now: datetime) -> SupplyRecord:
    return SupplyRecord(
        id=record_id,
        name=draft.name,
        category=draft.category,
        minimum_required=draft.minimum_required,
        current_quantity=draft.current_quantity,
        expiry_date=draft.expiry_date,
        location=draft.location,
        risk_level=classify(draft.current_quantity, draft.minimum_required, draft.expiry_date, now),
    )


class InventoryStore:

    def __init__(
        self,
        repository: Optional[SupplyRepository] = None,
        clock: Optional[Clock] = None,
        expiry_alert_days: int = settings.EXPIRY_ALERT_DAYS,
    ):
        self._repository = repository
        self._clock = clock or SystemClock()
        self.expiry_alert_window = timedelta(days=expiry_alert_days)
        self._write_lock = threading.RLock()
        self._lock = threading.RLock()
        self._views: List[LiveView] = []

        loaded = repository.load_all() if repository is not None else []
        self._records: Records = MappingProxyType({record.id: record for record in loaded})
        issued = repository.last_issued_id() if repository is not None else 0
        self._last_id = max([issued, *self._records])
        logger.info(f"Inventory store ready: {len(self._records)} items, last id {self._last_id}")

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def last_issued_id(self) -> int:
        return self._last_id

    # ==========================================================================
    # MUTATIONS
    # ==========================================================================

    def insert(self, draft: DraftInput) -> SupplyRecord:
        """Add a new item. The store issues the id and classifies risk."""
        draft = _validate_draft(draft)
        with self._write_lock:
            record = _record_from_draft(self._last_id + 1, draft, self._clock.now())
            self._last_id = record.id
            self._commit({**self._records, record.id: record})
            AuditLog.log_action("create", "supply_item", record.id, changes=record.model_dump(mode="json"))
            self._persist(record)
        return record

    def insert_many(self, drafts: Iterable[DraftInput]) -> List[SupplyRecord]:
        """Bulk insert. Every draft is validated before any of them is applied."""
        validated = [_validate_draft(draft) for draft in drafts]
        if not validated:
            return []
        with self._write_lock:
            now = self._clock.now()
            created = []
            for draft in validated:
                self._last_id += 1
                created.append(_record_from_draft(self._last_id, draft, now))
            self._commit({**self._records, **{record.id: record for record in created}})
            for record in created:
                AuditLog.log_action("create", "supply_item", record.id, changes=record.model_dump(mode="json"))
                self._persist(record)
        return created

    def update_quantity(self, record_id: int, new_quantity: int) -> SupplyRecord:
        new_quantity = _validate_quantity(new_quantity)
        with self._write_lock:
            current = self._require(record_id)
            record = current.model_copy(
                update={
                    "current_quantity": new_quantity,
                    "risk_level": classify(
                        new_quantity, current.minimum_required, current.expiry_date, self._clock.now()
                    ),
                }
            )
            self._commit({**self._records, record_id: record})
            AuditLog.log_action(
                "update_quantity", "supply_item", record_id,
                changes={"current_quantity": new_quantity, "risk_level": record.risk_level.value},
            )
            self._persist(record)
        return record

    def update_record(self, record_id: int, fields: DraftInput) -> SupplyRecord:
        """Replace every caller-settable field of an existing item."""
        draft = _validate_draft(fields)
        with self._write_lock:
            self._require(record_id)
            record = _record_from_draft(record_id, draft, self._clock.now())
            self._commit({**self._records, record_id: record})
            AuditLog.log_action("update", "supply_item", record_id, changes=record.model_dump(mode="json"))
            self._persist(record)
        return record

    def delete(self, record_id: int) -> SupplyRecord:
        """Remove an item. Deleting an id that is already gone raises NotFoundError."""
        with self._write_lock:
            removed = self._require(record_id)
            remaining = dict(self._records)
            del remaining[record_id]
            self._commit(remaining)
            AuditLog.log_action("delete", "supply_item", record_id, changes={"name": removed.name})
            self._remove(record_id)
        return removed

    def reclassify(self) -> List[SupplyRecord]:
        """
        Re-run classification for every item against clock.now().

        Only items whose risk level changed are rewritten and returned. This is
        the caller-driven answer to expiry dates drawing closer between writes.
        """
        with self._write_lock:
            now = self._clock.now()
            changed = []
            for record in self._records.values():
                level = classify(record.current_quantity, record.minimum_required, record.expiry_date, now)
                if level != record.risk_level:
                    changed.append(record.model_copy(update={"risk_level": level}))
            if not changed:
                return []
            self._commit({**self._records, **{record.id: record for record in changed}})
            for record in changed:
                AuditLog.log_action(
                    "reclassify", "supply_item", record.id, changes={"risk_level": record.risk_level.value}
                )
                self._persist(record)
        logger.info(f"Reclassified {len(changed)} supply items")
        return list(_by_name(changed))

    # ==========================================================================
    # LIVE VIEWS
    # ==========================================================================

    def snapshot(self) -> Tuple[SupplyRecord, ...]:
        """One-shot read of every item, in get_all() order."""
        return _by_name(self._records.values())

    def get_all(self) -> LiveView[Tuple[SupplyRecord, ...]]:
        return self._open(lambda records: _by_name(records.values()))

    def get_by_id(self, record_id: int) -> LiveView[Optional[SupplyRecord]]:
        return self._open(lambda records: records.get(record_id))

    def search(self, keyword: str) -> LiveView[Tuple[SupplyRecord, ...]]:
        """Case-insensitive substring match on name. Empty keyword matches all."""
        return self.combined_view(keyword)

    def filter(
        self,
        category: Optional[str] = None,
        location: Optional[str] = None,
        risk_level: Union[RiskLevel, str, None] = None,
    ) -> LiveView[Tuple[SupplyRecord, ...]]:
        """Items matching every given criterion; None means "any"."""
        return self.combined_view("", category=category, location=location, risk_level=risk_level)

    def combined_view(
        self,
        search_keyword: Optional[str] = "",
        category: Optional[str] = None,
        location: Optional[str] = None,
        risk_level: Union[RiskLevel, str, None] = None,
    ) -> LiveView[Tuple[SupplyRecord, ...]]:
        """Search first, then each non-null filter. Same result as a plain conjunction."""
        predicates: List[Callable[[SupplyRecord], bool]] = []
        if search_keyword:
            needle = search_keyword.casefold()
            predicates.append(lambda r: needle in r.name.casefold())
        if category is not None:
            predicates.append(lambda r: r.category == category)
        if location is not None:
            predicates.append(lambda r: r.location == location)
        level = _coerce_risk(risk_level)
        if level is not None:
            predicates.append(lambda r: r.risk_level == level)

        return self._open(
            lambda records: _by_name(r for r in records.values() if all(p(r) for p in predicates))
        )

    def critical_items(self) -> LiveView[Tuple[SupplyRecord, ...]]:
        return self.filter(risk_level=RiskLevel.CRITICAL)

    def expiring_within(self, window_end: datetime) -> LiveView[Tuple[SupplyRecord, ...]]:
        """Items with an expiry date at or before window_end, soonest first."""
        window_end = ensure_utc(window_end)

        def query(records: Records) -> Tuple[SupplyRecord, ...]:
            expiring = [
                r for r in records.values()
                if r.expiry_date is not None and r.expiry_date <= window_end
            ]
            return tuple(sorted(expiring, key=lambda r: (r.expiry_date, r.id)))

        return self._open(query)

    def risk_summary(self, window: Optional[timedelta] = None) -> LiveView[RiskSummary]:
        """Counts per risk level plus items expiring within `window` of now."""
        window = self.expiry_alert_window if window is None else window

        def query(records: Records) -> RiskSummary:
            cutoff = self._clock.now() + window
            levels = [r.risk_level for r in records.values()]
            return RiskSummary(
                total=len(levels),
                critical=levels.count(RiskLevel.CRITICAL),
                elevated=levels.count(RiskLevel.ELEVATED),
                normal=levels.count(RiskLevel.NORMAL),
                expiring=sum(
                    1 for r in records.values()
                    if r.expiry_date is not None and r.expiry_date <= cutoff
                ),
            )

        return self._open(query)

    # ==========================================================================
    # INTERNALS
    # ==========================================================================

    def _open(self, query: Callable[[Records], Any]) -> LiveView:
        # Registered under the state lock so no commit slips in between the
        # initial evaluation and the first refresh
        with self._lock:
            view = LiveView(query, self._records, on_cancel=self._detach)
            self._views.append(view)
        return view

    def _detach(self, view: LiveView):
        with self._lock:
            if view in self._views:
                self._views.remove(view)

    def _require(self, record_id: int) -> SupplyRecord:
        record = self._records.get(record_id)
        if record is None:
            raise NotFoundError(record_id)
        return record

    def _commit(self, records: dict):
        # Caller holds the writer lock; durable I/O happens after this returns
        with self._lock:
            self._records = MappingProxyType(records)
            for view in list(self._views):
                view.refresh(self._records)

    def _persist(self, record: SupplyRecord):
        if self._repository is None:
            return
        try:
            self._repository.persist(record)
        except Exception as e:
            self._report_storage_failure("persist", record.id, e)

    def _remove(self, record_id: int):
        if self._repository is None:
            return
        try:
            self._repository.remove(record_id)
        except Exception as e:
            self._report_storage_failure("remove", record_id, e)

    def _report_storage_failure(self, operation: str, record_id: int, error: Exception):
        logger.warning(f"Durable {operation} failed for supply item {record_id}: {error}")
        AuditLog.log_persistence_failure(operation, record_id, error)
        warnings.warn(
            f"Supply item {record_id} changed in memory but {operation} to storage failed: {error}",
            PersistenceWarning,
            stacklevel=4,
        )
