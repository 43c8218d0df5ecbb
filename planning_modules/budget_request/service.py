"""
Budget Request Service (``planning_modules.budget_request.service``).

Responsibility
--------------
Orchestrates the drug budget request: creation, item initialisation from
the drug master, manual and batch item edits, bulk import, report export,
and the approval lifecycle.  Calculation rules live in
``planning_engines.item_calculation``; transition rules in
``planning_engines.lifecycle`` evaluating ``BUDGET_REQUEST_WORKFLOW``.

Architecture position
---------------------
**Modules layer** -- ``BudgetRequestService`` is the sole public entry
point for budget request operations.  The drug catalogue, the allocation
ledger and the reopen permission are injected collaborators.

Invariants enforced
-------------------
* Each public mutating method owns the transaction boundary
  (``commit`` on success, ``rollback`` and re-raise on failure).
* The request row is loaded ``FOR UPDATE`` and the DRAFT check happens in
  the same transaction as the write.
* Every stored item satisfies the quarterly split, the funding split and
  positivity, except freshly initialised items, which are checked at
  submission.
* The allocation sink is called at most once per committed approval, with
  an idempotency key that is stable across retries of the same request.

Failure modes
-------------
* Mutation or deletion outside DRAFT -> ``NotEditableError``.
* Action not allowed from status     -> ``InvalidTransitionError``.
* Transition guard not satisfied     -> ``TransitionGuardError``.
* Unknown drug code on manual add    -> ``ReferentialNotFoundError``.
* Item fails an invariant            -> ``InvariantViolationError``.
* Whole-file import problem          -> ``FileFormatError`` (nothing written).
* Storage errors propagate unchanged after rollback.

Audit relevance
---------------
Structured log events for every mutation, carrying request and item ids.
Every row records ``created_by_id`` / ``updated_by_id`` from the explicit
``actor_id`` argument; each transition stamps its own timestamp and actor.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import replace
from decimal import Decimal
from pathlib import Path
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from planning_config import get_planning_config
from planning_config.schema import CalculationPolicy, PlanningConfig
from planning_engines.item_calculation import (
    ItemFigures,
    initialize_item,
    recompute_derived,
    validate_item,
)
from planning_engines.lifecycle import OutcomeKind, evaluate_transition
from planning_ingestion.domain.types import ImportMode, ImportReport, StagedRow
from planning_ingestion.services.reconciler import BulkReconciler
from planning_kernel.domain.clock import Clock, SystemClock
from planning_kernel.domain.dtos import ValidationError
from planning_kernel.exceptions import (
    AlreadyInitializedError,
    BatchTooLargeError,
    BudgetRequestNotFoundError,
    DuplicateItemError,
    InvalidTransitionError,
    InvariantViolationError,
    ItemNotFoundError,
    NotEditableError,
    ReferentialNotFoundError,
    TransitionGuardError,
)
from planning_kernel.logging_config import LogContext, get_logger
from planning_modules.budget_request.collaborators import (
    AllocationSink,
    DenyReopenAuthority,
    DrugMaster,
    LoggingAllocationSink,
    ReopenAuthority,
    allocation_key,
)
from planning_modules.budget_request.models import (
    BatchUpdateResult,
    BudgetRequest,
    BudgetRequestItem,
    ItemDelta,
    ItemPatch,
    ItemUpdateFailure,
    RequestStatus,
    SubmissionChecklist,
)
from planning_modules.budget_request.orm import BudgetRequestItemModel, BudgetRequestModel
from planning_modules.budget_request.workflows import (
    BUDGET_REQUEST_WORKFLOW,
    DEPARTMENT_ASSIGNED,
    REASON_GIVEN,
    REOPEN_AUTHORIZED,
    SUBMISSION_CHECKLIST,
    is_editable,
)
from planning_modules.reporting.sscj_export import ExportedReport, ExportFormat, render_report

logger = get_logger("modules.budget_request.service")

REQUEST_FIELDS = frozenset({"justification", "department_id"})


class BudgetRequestService:
    """
    Orchestrates budget request operations through engines and collaborators.

    Contract
    --------
    * Every method takes ids and DTO-shaped arguments and returns frozen
      DTOs; ORM objects never leave the service.
    * ``actor_id`` is an explicit argument of every mutating method.

    Guarantees
    ----------
    * A failed operation leaves the request and its items exactly as they
      were before the call.
    * Clock is injectable for deterministic testing.

    Non-goals
    ---------
    * Does NOT authenticate or authorise callers, beyond asking the
      ``ReopenAuthority`` about reopening a request under review.
    * Does NOT own the drug catalogue or the allocation ledger.
    """

    def __init__(
        self,
        session: Session,
        drug_master: DrugMaster,
        *,
        allocation_sink: AllocationSink | None = None,
        reopen_authority: ReopenAuthority | None = None,
        clock: Clock | None = None,
        config: PlanningConfig | None = None,
        reconciler: BulkReconciler | None = None,
    ):
        self._session = session
        self._drug_master = drug_master
        self._allocation_sink = allocation_sink or LoggingAllocationSink()
        self._reopen_authority = reopen_authority or DenyReopenAuthority()
        self._clock = clock or SystemClock()
        self._config = config or get_planning_config()
        self._reconciler = reconciler or BulkReconciler(self._config.imports)

    # =========================================================================
    # Internal helpers
    # =========================================================================

    def _load_request(self, request_id: UUID, *, lock: bool = False) -> BudgetRequestModel:
        stmt = select(BudgetRequestModel).where(BudgetRequestModel.id == request_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        model = self._session.execute(stmt).scalar_one_or_none()
        if model is None:
            raise BudgetRequestNotFoundError(str(request_id))
        return model

    def _require_editable(self, model: BudgetRequestModel, operation: str) -> None:
        if not is_editable(model.status):
            logger.warning("budget_request_not_editable", extra={
                "request_id": str(model.id),
                "status": model.status,
                "operation": operation,
            })
            raise NotEditableError(str(model.id), model.status, operation)

    def _policy(self, model: BudgetRequestModel) -> CalculationPolicy:
        return self._config.policy_for(model.fiscal_year)

    @staticmethod
    def _find_item(model: BudgetRequestModel, item_id: UUID) -> BudgetRequestItemModel | None:
        for item in model.items:
            if item.id == item_id:
                return item
        return None

    @staticmethod
    def _ordered_items(model: BudgetRequestModel) -> list[BudgetRequestItemModel]:
        return sorted(model.items, key=lambda i: i.line_number)

    @staticmethod
    def _next_line_number(model: BudgetRequestModel) -> int:
        return max((item.line_number for item in model.items), default=0) + 1

    @staticmethod
    def _refresh_total(model: BudgetRequestModel, actor_id: UUID) -> None:
        model.total_requested_amount = sum(
            (item.requested_amount for item in model.items), Decimal("0"),
        )
        model.updated_by_id = actor_id

    @staticmethod
    def _build_item(
        model: BudgetRequestModel,
        *,
        drug_id: UUID,
        drug_code: str,
        drug_name: str,
        package_size: str | None,
        unit: str | None,
        figures: ItemFigures,
        line_number: int,
        notes: str | None,
        actor_id: UUID,
    ) -> BudgetRequestItemModel:
        item = BudgetRequestItemModel(
            id=uuid4(),
            request_id=model.id,
            drug_id=drug_id,
            drug_code=drug_code,
            drug_name=drug_name,
            package_size=package_size,
            unit=unit,
            line_number=line_number,
            notes=notes,
            created_by_id=actor_id,
        )
        item.apply_figures(figures)
        return item

    def _next_request_code(self, fiscal_year: int) -> str:
        count = self._session.execute(
            select(func.count())
            .select_from(BudgetRequestModel)
            .where(BudgetRequestModel.fiscal_year == fiscal_year)
        ).scalar_one()
        return f"BR-{fiscal_year}-{count + 1:04d}"

    # =========================================================================
    # Requests
    # =========================================================================

    def create_request(
        self,
        fiscal_year: int,
        actor_id: UUID,
        department_id: UUID | None = None,
        justification: str | None = None,
        request_code: str | None = None,
    ) -> BudgetRequest:
        """Open a new DRAFT request with no items."""
        try:
            model = BudgetRequestModel(
                id=uuid4(),
                request_code=request_code or self._next_request_code(fiscal_year),
                fiscal_year=fiscal_year,
                department_id=department_id,
                status=RequestStatus.DRAFT.value,
                justification=justification,
                total_requested_amount=Decimal("0"),
                created_by_id=actor_id,
            )
            self._session.add(model)
            self._session.flush()
            request = model.to_dto()
            self._session.commit()
            logger.info("budget_request_created", extra={
                "request_id": str(request.id),
                "request_code": request.request_code,
                "fiscal_year": fiscal_year,
                "department_id": str(department_id) if department_id else None,
            })
            return request
        except Exception:
            self._session.rollback()
            raise

    def get_request(self, request_id: UUID) -> BudgetRequest:
        return self._load_request(request_id).to_dto()

    def list_items(self, request_id: UUID) -> list[BudgetRequestItem]:
        """Items of a request in line-number order."""
        model = self._load_request(request_id)
        return [item.to_dto() for item in self._ordered_items(model)]

    def update_request(
        self, request_id: UUID, changes: Mapping[str, Any], actor_id: UUID,
    ) -> BudgetRequest:
        """
        Change request-level fields.  Only keys present in ``changes`` are
        touched; ``justification`` and ``department_id`` may be set to None.
        """
        unknown = set(changes) - REQUEST_FIELDS
        if unknown:
            raise ValueError(f"Cannot update request field(s): {', '.join(sorted(unknown))}")
        try:
            model = self._load_request(request_id, lock=True)
            self._require_editable(model, "update_request")
            for name, value in changes.items():
                setattr(model, name, value)
            model.updated_by_id = actor_id
            self._session.flush()
            request = model.to_dto()
            self._session.commit()
            logger.info("budget_request_updated", extra={
                "request_id": str(request_id),
                "fields": sorted(changes),
            })
            return request
        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Items
    # =========================================================================

    def initialize_items(self, request_id: UUID, actor_id: UUID) -> int:
        """
        Create one item per drug-master planning candidate.

        Items start with requested = estimated purchase, all of it on the
        budget source, split evenly across quarters.  A request may only be
        initialised while it has no items.
        """
        try:
            model = self._load_request(request_id, lock=True)
            self._require_editable(model, "initialize_items")
            if model.items:
                raise AlreadyInitializedError(str(model.id), len(model.items))

            policy = self._policy(model)
            seen: set[UUID] = set()
            for facts in self._drug_master.planning_candidates(
                model.fiscal_year, model.department_id,
            ):
                if facts.drug_id in seen:
                    continue
                seen.add(facts.drug_id)
                model.items.append(self._build_item(
                    model,
                    drug_id=facts.drug_id,
                    drug_code=facts.drug_code,
                    drug_name=facts.drug_name,
                    package_size=facts.package_size,
                    unit=facts.unit,
                    figures=initialize_item(facts, policy),
                    line_number=len(seen),
                    notes=None,
                    actor_id=actor_id,
                ))
            self._refresh_total(model, actor_id)
            self._session.commit()
            logger.info("budget_request_items_initialized", extra={
                "request_id": str(request_id),
                "item_count": len(seen),
                "total_requested_amount": model.total_requested_amount,
            })
            return len(seen)
        except Exception:
            self._session.rollback()
            raise

    def add_item(
        self,
        request_id: UUID,
        drug_code: str,
        actor_id: UUID,
        patch: ItemPatch | None = None,
    ) -> BudgetRequestItem:
        """
        Add one drug to the request.

        The item is initialised from the drug master, then ``patch`` is
        applied on top; the result must satisfy every item invariant.
        """
        try:
            model = self._load_request(request_id, lock=True)
            self._require_editable(model, "add_item")

            facts = self._drug_master.resolve(drug_code)
            if facts is None:
                raise ReferentialNotFoundError(drug_code)
            if any(item.drug_id == facts.drug_id for item in model.items):
                raise DuplicateItemError(str(model.id), facts.drug_code)

            policy = self._policy(model)
            patch = patch or ItemPatch()
            evaluation = recompute_derived(patch.apply(initialize_item(facts, policy)), policy)
            if not evaluation.is_valid:
                raise InvariantViolationError(facts.drug_code, list(evaluation.violations))

            item = self._build_item(
                model,
                drug_id=facts.drug_id,
                drug_code=facts.drug_code,
                drug_name=facts.drug_name,
                package_size=facts.package_size,
                unit=facts.unit,
                figures=evaluation.figures,
                line_number=patch.get("line_number") or self._next_line_number(model),
                notes=patch.get("notes"),
                actor_id=actor_id,
            )
            model.items.append(item)
            self._refresh_total(model, actor_id)
            self._session.flush()
            dto = item.to_dto()
            self._session.commit()
            logger.info("item_added", extra={
                "request_id": str(request_id),
                "item_id": str(dto.id),
                "drug_code": dto.drug_code,
                "requested_qty": dto.requested_qty,
            })
            return dto
        except Exception:
            self._session.rollback()
            raise

    def update_item(
        self, request_id: UUID, item_id: UUID, patch: ItemPatch, actor_id: UUID,
    ) -> BudgetRequestItem:
        """Apply the present fields of ``patch`` to one item and re-validate it."""
        try:
            model = self._load_request(request_id, lock=True)
            self._require_editable(model, "update_item")
            item = self._find_item(model, item_id)
            if item is None:
                raise ItemNotFoundError(str(request_id), str(item_id))

            policy = self._policy(model)
            evaluation = recompute_derived(patch.apply(item.to_dto().figures()), policy)
            if not evaluation.is_valid:
                raise InvariantViolationError(item.drug_code, list(evaluation.violations))

            self._write_item(item, evaluation.figures, patch, actor_id)
            self._refresh_total(model, actor_id)
            self._session.flush()
            dto = item.to_dto()
            self._session.commit()
            logger.info("item_updated", extra={
                "request_id": str(request_id),
                "item_id": str(item_id),
                "drug_code": dto.drug_code,
                "fields": sorted(patch.fields),
            })
            return dto
        except Exception:
            self._session.rollback()
            raise

    @staticmethod
    def _write_item(
        item: BudgetRequestItemModel,
        figures: ItemFigures,
        patch: ItemPatch,
        actor_id: UUID,
    ) -> None:
        item.apply_figures(figures)
        if patch.has("notes"):
            item.notes = patch.get("notes")
        if patch.has("line_number"):
            item.line_number = patch.get("line_number")
        item.updated_by_id = actor_id

    def batch_update_items(
        self, request_id: UUID, deltas: Sequence[ItemDelta], actor_id: UUID,
    ) -> BatchUpdateResult:
        """
        Apply several item patches as one unit of work.

        Every delta is evaluated before anything is written.  If any delta
        names an unknown item or breaks an invariant, nothing is written and
        the result lists every failure.  Several deltas for the same item
        apply in order.
        """
        deltas = list(deltas)
        limit = self._config.max_batch_update
        if len(deltas) > limit:
            raise BatchTooLargeError(len(deltas), limit)
        try:
            model = self._load_request(request_id, lock=True)
            self._require_editable(model, "batch_update_items")
            policy = self._policy(model)

            by_id = {item.id: item for item in model.items}
            pending: dict[UUID, ItemFigures] = {}
            failures: list[ItemUpdateFailure] = []
            failed = 0
            for delta in deltas:
                item = by_id.get(delta.item_id)
                if item is None:
                    missing = ItemNotFoundError(str(request_id), str(delta.item_id))
                    failures.append(ItemUpdateFailure(delta.item_id, missing.code, str(missing)))
                    failed += 1
                    continue
                base = pending.get(item.id) or item.to_dto().figures()
                evaluation = recompute_derived(delta.patch.apply(base), policy)
                if not evaluation.is_valid:
                    failures.extend(
                        ItemUpdateFailure(item.id, v.code, v.message, v.field)
                        for v in evaluation.violations
                    )
                    failed += 1
                    continue
                pending[item.id] = evaluation.figures

            if failures:
                self._session.rollback()
                logger.warning("items_batch_update_rejected", extra={
                    "request_id": str(request_id),
                    "delta_count": len(deltas),
                    "failed": failed,
                })
                return BatchUpdateResult(updated=0, failed=failed, errors=tuple(failures))

            for delta in deltas:
                item = by_id[delta.item_id]
                self._write_item(item, pending[item.id], delta.patch, actor_id)
            self._refresh_total(model, actor_id)
            self._session.commit()
            logger.info("items_batch_updated", extra={
                "request_id": str(request_id),
                "delta_count": len(deltas),
                "updated": len(pending),
            })
            return BatchUpdateResult(updated=len(pending), failed=0)
        except Exception:
            self._session.rollback()
            raise

    def delete_item(self, request_id: UUID, item_id: UUID, actor_id: UUID) -> bool:
        """Remove one item.  Returns False when the request has no such item."""
        try:
            model = self._load_request(request_id, lock=True)
            self._require_editable(model, "delete_item")
            item = self._find_item(model, item_id)
            if item is None:
                self._session.rollback()
                return False
            model.items.remove(item)
            self._refresh_total(model, actor_id)
            self._session.commit()
            logger.info("item_deleted", extra={
                "request_id": str(request_id),
                "item_id": str(item_id),
                "drug_code": item.drug_code,
            })
            return True
        except Exception:
            self._session.rollback()
            raise

    def delete_request(self, request_id: UUID, actor_id: UUID) -> bool:
        """Delete a DRAFT request and its items.  False when it does not exist."""
        try:
            model = self._session.execute(
                select(BudgetRequestModel)
                .where(BudgetRequestModel.id == request_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if model is None:
                self._session.rollback()
                return False
            self._require_editable(model, "delete_request")
            item_count, request_code = len(model.items), model.request_code
            self._session.delete(model)
            self._session.commit()
            logger.info("budget_request_deleted", extra={
                "request_id": str(request_id),
                "actor_id": str(actor_id),
                "request_code": request_code,
                "item_count": item_count,
            })
            return True
        except Exception:
            self._session.rollback()
            raise

    def validate_for_submit(self, request_id: UUID) -> SubmissionChecklist:
        """Pre-submission checklist of the request and of each item."""
        model = self._load_request(request_id)
        return self._checklist(model)

    def _checklist(self, model: BudgetRequestModel) -> SubmissionChecklist:
        request_errors: list[ValidationError] = []
        minimum = self._config.justification_min_length
        if len((model.justification or "").strip()) < minimum:
            request_errors.append(ValidationError(
                code="JUSTIFICATION_TOO_SHORT",
                message=f"Justification must be at least {minimum} characters.",
                field="justification",
            ))
        if not model.items:
            request_errors.append(ValidationError(
                code="NO_ITEMS",
                message="request has no items",
            ))
        return SubmissionChecklist(
            request_errors=tuple(request_errors),
            item_errors=self._invalid_items(model),
        )

    def _invalid_items(self, model: BudgetRequestModel) -> dict[str, list[ValidationError]]:
        policy = self._policy(model)
        invalid: dict[str, list[ValidationError]] = {}
        for item in self._ordered_items(model):
            violations = validate_item(item.to_dto().figures(), policy)
            if violations:
                invalid[item.drug_code] = violations
        return invalid

    # =========================================================================
    # Import / export
    # =========================================================================

    def import_file(
        self,
        request_id: UUID,
        source_path: Path | str,
        mode: ImportMode | str,
        actor_id: UUID,
        *,
        filename: str | None = None,
        dry_run: bool = False,
    ) -> ImportReport:
        """
        Bulk-load items from a CSV or xlsx file.

        Every row is accepted or rejected before anything is written; the
        accepted rows are then applied in this transaction.  With
        ``dry_run`` the report is produced and nothing is written.
        """
        mode = ImportMode(mode)
        source_path = Path(source_path)
        with LogContext.bind(request_id=str(request_id), actor_id=str(actor_id)):
            try:
                model = self._load_request(request_id, lock=True)
                self._require_editable(model, "import_file")
                policy = self._policy(model)
                plan = self._reconciler.plan(
                    source_path,
                    fiscal_year=model.fiscal_year,
                    policy=policy,
                    resolve_drug=self._drug_master.resolve,
                    filename=filename,
                )

                existing = {item.drug_id: item for item in model.items}
                if mode is ImportMode.REPLACE_ALL:
                    imported, updated, deleted = len(plan.staged), 0, len(existing)
                else:
                    updated = sum(1 for row in plan.staged if row.drug_id in existing)
                    imported, deleted = len(plan.staged) - updated, 0
                report = ImportReport(
                    mode=mode,
                    imported=imported,
                    updated=updated,
                    skipped=plan.rejected_rows,
                    total_rows=plan.total_rows,
                    errors=plan.errors,
                    warnings=plan.warnings,
                    deleted=deleted,
                    dry_run=dry_run,
                    layout=plan.layout,
                )

                if dry_run:
                    self._session.rollback()
                else:
                    if mode is ImportMode.REPLACE_ALL:
                        self._replace_items(model, plan.staged, actor_id)
                    else:
                        self._merge_items(model, existing, plan.staged, policy, actor_id)
                    self._refresh_total(model, actor_id)
                    self._session.commit()

                logger.info("import_completed", extra={
                    "source_filename": plan.filename,
                    "mode": mode.value,
                    "imported": report.imported,
                    "updated": report.updated,
                    "skipped": report.skipped,
                    "deleted": report.deleted,
                    "dry_run": dry_run,
                })
                return report
            except Exception:
                self._session.rollback()
                raise

    def _replace_items(
        self, model: BudgetRequestModel, staged: Iterable[StagedRow], actor_id: UUID,
    ) -> None:
        model.items.clear()
        # Old rows must be gone before the same drugs are inserted again.
        self._session.flush()
        for line_number, row in enumerate(staged, start=1):
            model.items.append(self._staged_item(model, row, line_number, actor_id))

    def _merge_items(
        self,
        model: BudgetRequestModel,
        existing: dict[UUID, BudgetRequestItemModel],
        staged: Iterable[StagedRow],
        policy: CalculationPolicy,
        actor_id: UUID,
    ) -> None:
        next_line = self._next_line_number(model)
        for row in staged:
            item = existing.get(row.drug_id)
            if item is None:
                model.items.append(self._staged_item(model, row, next_line, actor_id))
                next_line += 1
                continue
            figures = row.figures
            if not row.history_supplied:
                figures = recompute_derived(
                    replace(figures, historical_usage=item.historical_usage), policy,
                ).figures
            item.apply_figures(figures)
            if row.notes_supplied:
                item.notes = row.notes
            item.updated_by_id = actor_id

    def _staged_item(
        self, model: BudgetRequestModel, row: StagedRow, line_number: int, actor_id: UUID,
    ) -> BudgetRequestItemModel:
        return self._build_item(
            model,
            drug_id=row.drug_id,
            drug_code=row.drug_code,
            drug_name=row.drug_name,
            package_size=row.package_size,
            unit=row.unit,
            figures=row.figures,
            line_number=line_number,
            notes=row.notes,
            actor_id=actor_id,
        )

    def export_report(
        self, request_id: UUID, fmt: ExportFormat | str = ExportFormat.SSCJ_XLSX,
    ) -> ExportedReport:
        """Render the request as an SSCJ workbook or a flat CSV.  Any status."""
        model = self._load_request(request_id)
        items = [item.to_dto() for item in self._ordered_items(model)]
        return render_report(
            model.to_dto(),
            items,
            ExportFormat(fmt),
            self._config.export,
            self._config.imports.csv_delimiter,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def submit(self, request_id: UUID, actor_id: UUID) -> BudgetRequest:
        return self._transition(request_id, "submit", actor_id)

    def approve_dept(
        self, request_id: UUID, actor_id: UUID, comments: str | None = None,
    ) -> BudgetRequest:
        return self._transition(request_id, "approve_dept", actor_id, comments=comments)

    def approve_finance(
        self, request_id: UUID, actor_id: UUID, comments: str | None = None,
    ) -> BudgetRequest:
        """Final approval.  Hands the plan to the allocation sink exactly once."""
        return self._transition(request_id, "approve_finance", actor_id, comments=comments)

    def reject(self, request_id: UUID, actor_id: UUID, reason: str) -> BudgetRequest:
        return self._transition(request_id, "reject", actor_id, reason=reason)

    def reopen(self, request_id: UUID, actor_id: UUID) -> BudgetRequest:
        """Back to DRAFT.  From SUBMITTED or DEPT_APPROVED only if authorised."""
        return self._transition(request_id, "reopen", actor_id)

    def _transition(
        self,
        request_id: UUID,
        action: str,
        actor_id: UUID,
        *,
        comments: str | None = None,
        reason: str | None = None,
    ) -> BudgetRequest:
        with LogContext.bind(request_id=str(request_id), actor_id=str(actor_id)):
            try:
                model = self._load_request(request_id, lock=True)
                from_status = model.status
                guard_results, reasons = self._evaluate_guards(model, action, actor_id, reason)
                outcome = evaluate_transition(
                    BUDGET_REQUEST_WORKFLOW, from_status, action, guard_results,
                )
                if outcome.kind is OutcomeKind.NO_TRANSITION:
                    raise InvalidTransitionError(str(model.id), from_status, action)
                if outcome.kind is OutcomeKind.GUARD_FAILED:
                    raise TransitionGuardError(
                        str(model.id),
                        action,
                        outcome.failed_guard,
                        reasons.get(outcome.failed_guard) or outcome.reason,
                    )

                now = self._clock.now()
                self._stamp(model, action, from_status, actor_id, now, comments, reason)
                model.status = outcome.to_state
                model.updated_by_id = actor_id
                if outcome.transition.emits_allocation:
                    self._emit_allocations(model, now)
                self._session.flush()
                request = model.to_dto()
                self._session.commit()
                logger.info("request_transitioned", extra={
                    "action": action,
                    "from_status": from_status,
                    "to_status": request.status.value,
                })
                return request
            except Exception:
                self._session.rollback()
                logger.warning("request_transition_failed", extra={"action": action})
                raise

    def _evaluate_guards(
        self,
        model: BudgetRequestModel,
        action: str,
        actor_id: UUID,
        reason: str | None,
    ) -> tuple[dict[str, bool], dict[str, str]]:
        """Evaluate only the guards of transitions that could fire."""
        results: dict[str, bool] = {}
        reasons: dict[str, str] = {}
        for transition in BUDGET_REQUEST_WORKFLOW.transitions_for(model.status, action):
            guard = transition.guard
            if guard is None or guard.name in results:
                continue
            passed, why = self._check_guard(guard.name, model, actor_id, reason)
            results[guard.name] = passed
            if why:
                reasons[guard.name] = why
        return results, reasons

    def _check_guard(
        self,
        guard_name: str,
        model: BudgetRequestModel,
        actor_id: UUID,
        reason: str | None,
    ) -> tuple[bool, str | None]:
        if guard_name == SUBMISSION_CHECKLIST.name:
            checklist = self._checklist(model)
            if checklist.ready:
                return True, None
            problems = [error.message for error in checklist.request_errors]
            if checklist.item_errors:
                problems.append(
                    f"{len(checklist.item_errors)} item(s) fail validation: "
                    f"{', '.join(checklist.item_errors)}"
                )
            return False, "; ".join(problems)
        if guard_name == DEPARTMENT_ASSIGNED.name:
            return model.department_id is not None, None
        if guard_name == REASON_GIVEN.name:
            return bool(reason and reason.strip()), None
        if guard_name == REOPEN_AUTHORIZED.name:
            return bool(self._reopen_authority.may_reopen(model.to_dto(), actor_id)), None
        raise ValueError(f"Unknown guard: {guard_name}")

    @staticmethod
    def _stamp(
        model: BudgetRequestModel,
        action: str,
        from_status: str,
        actor_id: UUID,
        now,
        comments: str | None,
        reason: str | None,
    ) -> None:
        if action == "submit":
            model.submitted_at, model.submitted_by = now, actor_id
        elif action == "approve_dept":
            model.dept_reviewed_at, model.dept_reviewed_by = now, actor_id
            model.dept_comments = comments
        elif action == "approve_finance":
            model.finance_reviewed_at, model.finance_reviewed_by = now, actor_id
            model.finance_comments = comments
        elif action == "reject":
            model.rejected_at, model.rejected_by = now, actor_id
            model.rejection_reason = reason.strip()
            # The reviewer of the stage being rejected.
            if from_status == RequestStatus.SUBMITTED.value:
                model.dept_reviewed_at, model.dept_reviewed_by = now, actor_id
            else:
                model.finance_reviewed_at, model.finance_reviewed_by = now, actor_id
        elif action == "reopen":
            model.reopened_at, model.reopened_by = now, actor_id

    def _emit_allocations(self, model: BudgetRequestModel, now) -> None:
        if model.allocations_created_at is not None:
            logger.warning("allocations_already_created", extra={
                "request_id": str(model.id),
            })
            return
        items = [item.to_dto() for item in self._ordered_items(model)]
        self._allocation_sink.create_allocations(
            model.to_dto(), items, allocation_key(model.id),
        )
        model.allocations_created_at = now
        logger.info("allocations_created", extra={
            "request_id": str(model.id),
            "item_count": len(items),
            "total_requested_amount": model.total_requested_amount,
        })
