"""
Infrastructure Workflow — stage operations for Proposal, RKB and Disbursement.

Each stage is an :class:`ApprovableStage` configured by a :class:`StageSpec`.
The module-level functions are the public contract used by blueprints:

    save_proposal / submit_proposal / approve_proposal / reject_proposal
    save_rkb      / submit_rkb      / approve_rkb      / reject_rkb
    save_disbursement / submit_disbursement / approve_disbursement / reject_disbursement
"""

from itdesk.models.infra import (
    EDITABLE_STATUSES,
    PAYMENT_METHODS,
    PROPOSAL_EDITABLE_STATUSES,
    Disbursement,
    Proposal,
    RkbSubmission,
)
from itdesk.services.approval_stage import ApprovableStage, StageSpec
from itdesk.utils.helpers import parse_date_input, parse_decimal


# ── Field coercers (raise ValueError) ────────────────────────────────────────


def _text(value):
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _url(value):
    text = _text(value)
    if text is not None and len(text) > 500:
        raise ValueError("must be at most 500 characters")
    return text


def _amount(value):
    amount = parse_decimal(value)
    if amount is not None and amount < 0:
        raise ValueError("must be >= 0")
    return amount


def _payment_method(value):
    method = _text(value)
    if method is None:
        return None
    method = method.upper()
    if method not in PAYMENT_METHODS:
        raise ValueError(f"must be one of {sorted(PAYMENT_METHODS)}")
    return method


# ── Stage definitions ────────────────────────────────────────────────────────

PROPOSAL_STAGE = ApprovableStage(StageSpec(
    model=Proposal,
    phase="PROPOSAL",
    label="Proposal",
    audit_entity="proposal",
    editable_statuses=PROPOSAL_EDITABLE_STATUSES,
    fields={
        "background": _text,
        "objectives": _text,
        "scope": _text,
        "benefits": _text,
        "risk_analysis": _text,
        "attachment_url": _url,
    },
))

RKB_STAGE = ApprovableStage(StageSpec(
    model=RkbSubmission,
    phase="RKB",
    label="RKB",
    audit_entity="rkb",
    editable_statuses=EDITABLE_STATUSES,
    # total_budget is derived from items and never accepted from callers
    fields={
        "submission_number": _text,
        "justification": _text,
    },
))

DISBURSEMENT_STAGE = ApprovableStage(StageSpec(
    model=Disbursement,
    phase="DISBURSEMENT",
    label="Disbursement",
    audit_entity="disbursement",
    editable_statuses=EDITABLE_STATUSES,
    fields={
        "approved_budget": _amount,
        "disbursed_amount": _amount,
        "disbursement_date": parse_date_input,
        "payment_method": _payment_method,
        "reference_number": _text,
        "notes": _text,
    },
    rejection_field="notes",
))

STAGES = {
    "proposal": PROPOSAL_STAGE,
    "rkb": RKB_STAGE,
    "disbursement": DISBURSEMENT_STAGE,
}


def get_stage(name: str) -> ApprovableStage:
    """Look up a stage by its URL slug (``proposal`` | ``rkb`` | ``disbursement``)."""
    return STAGES[name]


# ── Proposal ─────────────────────────────────────────────────────────────────


def save_proposal(project_id: int, fields: dict, *, actor: str = "system") -> Proposal:
    return PROPOSAL_STAGE.upsert(project_id, fields, actor=actor)


def submit_proposal(project_id: int, *, actor: str = "system") -> Proposal:
    return PROPOSAL_STAGE.submit(project_id, actor=actor)


def approve_proposal(project_id: int, approved_by: str, *, actor: str = "system") -> Proposal:
    return PROPOSAL_STAGE.approve(project_id, approved_by, actor=actor)


def reject_proposal(project_id: int, reason: str, *, actor: str = "system") -> Proposal:
    return PROPOSAL_STAGE.reject(project_id, reason, actor=actor)


# ── RKB ──────────────────────────────────────────────────────────────────────


def save_rkb(project_id: int, fields: dict, *, actor: str = "system") -> RkbSubmission:
    return RKB_STAGE.upsert(project_id, fields, actor=actor)


def submit_rkb(project_id: int, *, actor: str = "system") -> RkbSubmission:
    return RKB_STAGE.submit(project_id, actor=actor)


def approve_rkb(project_id: int, approved_by: str, *, actor: str = "system") -> RkbSubmission:
    return RKB_STAGE.approve(project_id, approved_by, actor=actor)


def reject_rkb(project_id: int, reason: str, *, actor: str = "system") -> RkbSubmission:
    return RKB_STAGE.reject(project_id, reason, actor=actor)


# ── Disbursement ─────────────────────────────────────────────────────────────


def save_disbursement(project_id: int, fields: dict, *, actor: str = "system") -> Disbursement:
    return DISBURSEMENT_STAGE.upsert(project_id, fields, actor=actor)


def submit_disbursement(project_id: int, *, actor: str = "system") -> Disbursement:
    return DISBURSEMENT_STAGE.submit(project_id, actor=actor)


def approve_disbursement(project_id: int, approved_by: str, *, actor: str = "system") -> Disbursement:
    return DISBURSEMENT_STAGE.approve(project_id, approved_by, actor=actor)


def reject_disbursement(project_id: int, reason: str, *, actor: str = "system") -> Disbursement:
    return DISBURSEMENT_STAGE.reject(project_id, reason, actor=actor)
