"""
Escrow settlement core.

- store: EscrowStore, the validated read boundary and every state transition
- policy: decide(), the pure release rules
- transfer: TransferExecutor, the idempotent Stripe transfer
- orchestrator: ReleaseOrchestrator, the batch procedure behind all triggers
"""

from payments.escrow.orchestrator import ReleaseOrchestrator, ReleaseSummary
from payments.escrow.policy import (
    Decision,
    DecisionKind,
    DecisionReason,
    GlobalFlags,
    SiteFlags,
    decide,
    is_valid_amount,
)
from payments.escrow.store import DueEscrows, EscrowFilter, EscrowRecord, EscrowStore
from payments.escrow.transfer import (
    TransferExecutor,
    TransferIdempotencyKey,
    TransferOutcome,
    TransferParams,
    TransferShape,
)

__all__ = [
    "Decision",
    "DecisionKind",
    "DecisionReason",
    "DueEscrows",
    "EscrowFilter",
    "EscrowRecord",
    "EscrowStore",
    "GlobalFlags",
    "ReleaseOrchestrator",
    "ReleaseSummary",
    "SiteFlags",
    "TransferExecutor",
    "TransferIdempotencyKey",
    "TransferOutcome",
    "TransferParams",
    "TransferShape",
    "decide",
    "is_valid_amount",
]
