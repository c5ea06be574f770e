"""
Infrastructure Workflow — RKB budget aggregator.

``RkbItem.total_price`` is always ``quantity × unit_price`` and is never
accepted from callers.  ``RkbSubmission.total_budget`` is always the sum of
the project's item totals and is recomputed after every add and remove.

Items can only change while the project is in the RKB phase and the RKB
submission is still editable (DRAFT or REJECTED).
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import func, select

from itdesk.core.exceptions import NotFoundError, StageLocked, ValidationError
from itdesk.models import db
from itdesk.models.audit import safe_audit
from itdesk.models.infra import EDITABLE_STATUSES, RkbItem, RkbSubmission
from itdesk.services.infra_workflow_service import RKB_STAGE
from itdesk.services.phase_controller import ensure_phase, lock_project
from itdesk.utils.helpers import parse_decimal, unit_of_work

logger = logging.getLogger(__name__)

_TEXT_FIELDS = ("specification", "vendor", "notes")

# Column limits: Integer quantity, Numeric(18, 2) prices and totals
MAX_QUANTITY = 2_147_483_647
MAX_AMOUNT = Decimal("9999999999999999.99")


def line_total(quantity: int, unit_price: Decimal) -> Decimal:
    return (Decimal(quantity) * unit_price).quantize(Decimal("0.01"))


def validate_item(data: dict) -> dict:
    """Validate raw item input and return clean column values.

    Raises:
        ValidationError: with a per-field ``details`` map.
    """
    data = data or {}
    errors = {}
    clean = {}

    item_name = str(data.get("item_name") or "").strip()
    if not item_name:
        errors["item_name"] = "required"
    clean["item_name"] = item_name

    unit = str(data.get("unit") or "").strip()
    if not unit:
        errors["unit"] = "required"
    clean["unit"] = unit

    quantity = data.get("quantity")
    if isinstance(quantity, bool):
        errors["quantity"] = "must be an integer >= 1"
    else:
        try:
            # Reject fractional quantities such as 1.5 instead of truncating
            as_decimal = parse_decimal(quantity)
            if as_decimal is None or as_decimal != as_decimal.to_integral_value():
                raise ValueError("not an integer")
            quantity = int(as_decimal)
            if not 1 <= quantity <= MAX_QUANTITY:
                raise ValueError("out of range")
            clean["quantity"] = quantity
        except ValueError:
            errors["quantity"] = f"must be an integer between 1 and {MAX_QUANTITY}"

    try:
        unit_price = parse_decimal(data.get("unit_price"))
        if unit_price is None:
            raise ValueError("missing")
        if not 0 <= unit_price <= MAX_AMOUNT:
            raise ValueError("out of range")
        clean["unit_price"] = unit_price
    except ValueError:
        errors["unit_price"] = f"must be a number between 0 and {MAX_AMOUNT}"

    if "quantity" in clean and "unit_price" in clean:
        if line_total(clean["quantity"], clean["unit_price"]) > MAX_AMOUNT:
            errors["total_price"] = f"quantity × unit_price must not exceed {MAX_AMOUNT}"

    if errors:
        raise ValidationError(
            f"Invalid RKB item: {', '.join(sorted(errors))}",
            details=errors,
        )

    for name in _TEXT_FIELDS:
        value = data.get(name)
        if value is not None:
            value = str(value).strip() or None
        clean[name] = value
    return clean


def recompute_total_budget(project_id: int) -> Decimal:
    """Store Σ item.total_price on the project's RKB submission and return it.

    Flushes but does not commit.  Returns the sum even when the project has
    no submission row yet.
    """
    total = db.session.execute(
        select(func.coalesce(func.sum(RkbItem.total_price), 0))
        .where(RkbItem.project_id == project_id)
    ).scalar_one()
    total = Decimal(str(total)).quantize(Decimal("0.01"))
    if total > MAX_AMOUNT:
        raise ValidationError(
            f"RKB total budget would exceed {MAX_AMOUNT}",
            details={"total_budget": str(total)},
        )

    submission = RKB_STAGE.get(project_id)
    if submission is not None:
        submission.total_budget = total
        db.session.flush()
    return total


def _editable_submission(project_id: int, *, create: bool) -> RkbSubmission | None:
    submission = RKB_STAGE.get(project_id, lock=True)
    if submission is None:
        if not create:
            return None
        submission = RKB_STAGE.create(project_id, "DRAFT")
    elif submission.approval_status not in EDITABLE_STATUSES:
        raise StageLocked("RKB", submission.approval_status)
    return submission


def add_rkb_item(project_id: int, data: dict, *, actor: str = "system") -> tuple[RkbItem, Decimal]:
    """Append an item to the project's RKB and recompute the budget.

    Returns:
        ``(item, total_budget)``.

    Raises:
        ValidationError: bad item fields (checked before any write).
        NotFoundError, NotInfrastructureProject, AlreadyCompleted,
        WrongPhase: project guards.
        StageLocked: the RKB submission is PENDING or APPROVED.
    """
    clean = validate_item(data)

    with unit_of_work("rkb_item.add"):
        project = lock_project(project_id)
        ensure_phase(project, "RKB")
        _editable_submission(project_id, create=True)

        item = RkbItem(
            project_id=project_id,
            total_price=line_total(clean["quantity"], clean["unit_price"]),
            **clean,
        )
        db.session.add(item)
        db.session.flush()
        total = recompute_total_budget(project_id)

        safe_audit(
            entity_type="rkb_item",
            entity_id=item.id,
            action="rkb_item.add",
            actor=actor,
            project_id=project_id,
            diff={"total_price": item.total_price, "total_budget": total},
        )

    logger.info(
        "RKB item added: %s",
        item.item_name,
        extra={"project_id": project_id, "item_id": item.id, "total_budget": str(total), "actor": actor},
    )
    return item, total


def remove_rkb_item(item_id: int, *, actor: str = "system", project_id: int | None = None) -> Decimal:
    """Delete an item and recompute its project's budget.

    Args:
        item_id: Item to delete.
        project_id: When given, the item must belong to this project.

    Returns:
        The recomputed total budget.

    Raises:
        NotFoundError: item missing (or owned by another project).
        WrongPhase, StageLocked: as for :func:`add_rkb_item`.
    """
    with unit_of_work("rkb_item.remove"):
        item = db.session.get(RkbItem, item_id)
        if item is None or (project_id is not None and item.project_id != project_id):
            raise NotFoundError(resource="RkbItem", resource_id=item_id)

        owner_id = item.project_id
        project = lock_project(owner_id)
        ensure_phase(project, "RKB")
        _editable_submission(owner_id, create=False)

        removed_total = item.total_price
        db.session.delete(item)
        db.session.flush()
        total = recompute_total_budget(owner_id)

        safe_audit(
            entity_type="rkb_item",
            entity_id=item_id,
            action="rkb_item.remove",
            actor=actor,
            project_id=owner_id,
            diff={"total_price": removed_total, "total_budget": total},
        )

    logger.info(
        "RKB item removed",
        extra={"project_id": owner_id, "item_id": item_id, "total_budget": str(total), "actor": actor},
    )
    return total
