"""
Milestone validation.

Milestones advance automatically from synced data and never move backwards:

    not_started -> in_progress -> completed
    blocked      (from any state short of completed, set by a person)

The validator only drives forward transitions. Blocked milestones are left
alone until someone unblocks them.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from app.exceptions import InvalidMilestoneTransition
from app.models.journey import (
    MILESTONE_BLOCKED, MILESTONE_COMPLETED, MILESTONE_IN_PROGRESS,
    MILESTONE_NOT_STARTED, Milestone,
)
from app.models.mercado_livre import MLAccount
from app.services.metrics_aggregator import MetricsSnapshot
from app.services.ml_store import MLStore
from app.utils.logger import log

SALES_TARGET = 10

_FORWARD = {
    MILESTONE_NOT_STARTED: {MILESTONE_IN_PROGRESS, MILESTONE_COMPLETED, MILESTONE_BLOCKED},
    MILESTONE_IN_PROGRESS: {MILESTONE_COMPLETED, MILESTONE_BLOCKED},
    MILESTONE_BLOCKED: {MILESTONE_NOT_STARTED, MILESTONE_IN_PROGRESS, MILESTONE_COMPLETED},
    MILESTONE_COMPLETED: set(),
}


def transition(milestone: Milestone, status: str, progress: Optional[int] = None,
               now: Optional[datetime] = None, notes: Optional[str] = None) -> bool:
    """
    Move a milestone to ``status``. Returns False when nothing changed.

    Raises InvalidMilestoneTransition for backwards moves.
    """
    current = milestone.status or MILESTONE_NOT_STARTED
    if status == current:
        if progress is not None and progress > (milestone.progress or 0):
            milestone.progress = progress
            return True
        return False
    if status not in _FORWARD[current]:
        raise InvalidMilestoneTransition(f"Milestone {milestone.id} cannot go from {current} to {status}")

    milestone.status = status
    if status == MILESTONE_COMPLETED:
        milestone.progress = 100
        milestone.completed_at = now
    elif progress is not None:
        milestone.progress = max(progress, milestone.progress or 0)
    if notes:
        milestone.notes = notes
    return True


@dataclass(frozen=True)
class MilestoneEvidence:
    """What the validator knows about the account after a sync"""
    total_sales: int
    has_decola: bool
    has_active_full_stock: bool


# (title keywords, evaluator) -> evaluator returns (target status, progress, note)
Evaluation = Tuple[str, int, Optional[str]]


def _evaluate_sales(e: MilestoneEvidence) -> Evaluation:
    if e.total_sales >= SALES_TARGET:
        return MILESTONE_COMPLETED, 100, f"Completed automatically: {e.total_sales} sales in the period"
    if e.total_sales > 0:
        return MILESTONE_IN_PROGRESS, e.total_sales * 100 // SALES_TARGET, None
    return MILESTONE_NOT_STARTED, 0, None


def _evaluate_decola(e: MilestoneEvidence) -> Evaluation:
    if e.has_decola:
        return MILESTONE_COMPLETED, 100, "Completed automatically: reputation protection (Decola) active"
    return MILESTONE_NOT_STARTED, 0, None


def _evaluate_full(e: MilestoneEvidence) -> Evaluation:
    if e.has_active_full_stock:
        return MILESTONE_COMPLETED, 100, "Completed automatically: FULL stock available"
    return MILESTONE_NOT_STARTED, 0, None


MILESTONE_RULES: List[Tuple[Tuple[str, ...], Callable[[MilestoneEvidence], Evaluation]]] = [
    (("10 vendas", "10 sales"), _evaluate_sales),
    (("decola",), _evaluate_decola),
    (("full",), _evaluate_full),
]


def rule_for(milestone: Milestone) -> Optional[Callable[[MilestoneEvidence], Evaluation]]:
    title = (milestone.title or "").lower()
    for keywords, evaluator in MILESTONE_RULES:
        if any(keyword in title for keyword in keywords):
            return evaluator
    return None


class MilestoneValidator:
    """Applies MILESTONE_RULES to an account's milestones"""

    def __init__(self, store: MLStore):
        self.store = store

    def evidence(self, account: MLAccount, snapshot: MetricsSnapshot) -> MilestoneEvidence:
        return MilestoneEvidence(
            total_sales=snapshot.sales.total_sales,
            has_decola=snapshot.reputation.has_decola,
            has_active_full_stock=self.store.has_available_full_stock(account, snapshot.period_start),
        )

    def apply(self, milestones: List[Milestone], evidence: MilestoneEvidence, now: datetime) -> List[Milestone]:
        """Advance milestones in place; returns the ones that changed"""
        changed = []
        for milestone in milestones:
            if milestone.status in (MILESTONE_COMPLETED, MILESTONE_BLOCKED):
                continue
            evaluator = rule_for(milestone)
            if evaluator is None:
                continue

            target, progress, note = evaluator(evidence)
            if target == MILESTONE_NOT_STARTED:
                continue
            if transition(milestone, target, progress=progress, now=now, notes=note):
                changed.append(milestone)
        return changed

    def validate(self, account: MLAccount, snapshot: MetricsSnapshot) -> List[Milestone]:
        milestones = self.store.list_milestones(account)
        changed = self.apply(milestones, self.evidence(account, snapshot), snapshot.period_end)
        if changed:
            self.store.save_milestones(changed)
            for milestone in changed:
                log.info(f"Milestone '{milestone.title}' for account {account.id} -> {milestone.status}")
        return changed
