"""
Status state machines for invoices, opportunities and projects.

Moving a record to the status it already has is always accepted and changes
nothing.
"""

from typing import Dict, FrozenSet

INVOICE_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "draft": frozenset({"sent", "cancelled"}),
    "sent": frozenset({"paid", "overdue", "cancelled"}),
    "overdue": frozenset({"paid", "cancelled"}),
    "paid": frozenset(),
    "cancelled": frozenset(),
}

OPEN_STAGES = ("prospecting", "qualification", "proposal", "negotiation")
CLOSED_STAGES = ("closed_won", "closed_lost")

OPPORTUNITY_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "prospecting": frozenset({"qualification", "closed_lost"}),
    "qualification": frozenset({"proposal", "closed_lost"}),
    "proposal": frozenset({"negotiation", "closed_lost"}),
    "negotiation": frozenset({"closed_won", "closed_lost"}),
    "closed_won": frozenset(),
    "closed_lost": frozenset(),
}

# Probability implied by each stage, used when a stage change does not set one
STAGE_PROBABILITY = {
    "prospecting": 10,
    "qualification": 25,
    "proposal": 50,
    "negotiation": 75,
    "closed_won": 100,
    "closed_lost": 0,
}

PROJECT_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "planned": frozenset({"in_progress"}),
    "in_progress": frozenset({"review"}),
    "review": frozenset({"delivered", "in_progress"}),
    "delivered": frozenset({"closed"}),
    "closed": frozenset(),
}

STATUS_LABELS = {
    "draft": "Brouillon",
    "sent": "Envoyée",
    "paid": "Payée",
    "overdue": "En retard",
    "cancelled": "Annulée",
    "prospecting": "Prospection",
    "qualification": "Qualification",
    "proposal": "Proposition",
    "negotiation": "Négociation",
    "closed_won": "Gagnée",
    "closed_lost": "Perdue",
    "planned": "Planifié",
    "in_progress": "En cours",
    "review": "En revue",
    "delivered": "Livré",
    "closed": "Clôturé",
}


class InvalidTransitionError(ValueError):
    def __init__(self, entity: str, current: str, target: str):
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(
            f"Transition impossible : {STATUS_LABELS.get(current, current)} → {STATUS_LABELS.get(target, target)}"
        )


def _check(entity: str, transitions: Dict[str, FrozenSet[str]], current: str, target: str) -> bool:
    """True when the status actually changes; raises when the move is not allowed."""
    if current == target:
        return False
    if target not in transitions.get(current, frozenset()):
        raise InvalidTransitionError(entity, current, target)
    return True


def check_invoice_transition(current: str, target: str) -> bool:
    return _check("invoice", INVOICE_TRANSITIONS, current, target)


def check_opportunity_transition(current: str, target: str) -> bool:
    return _check("opportunity", OPPORTUNITY_TRANSITIONS, current, target)


def check_project_transition(current: str, target: str) -> bool:
    return _check("project", PROJECT_TRANSITIONS, current, target)


def is_closed_stage(stage: str) -> bool:
    return stage in CLOSED_STAGES
