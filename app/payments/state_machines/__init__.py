"""
State machine enums for payment models.

Status values for escrows, orders and webhook events, plus the release
mode the orchestrator runs in. Escrow transitions are django-fsm
@transition methods on the Escrow model.
"""

from payments.state_machines.states import (
    EscrowStatus,
    OrderStatus,
    ReleaseMode,
    WebhookEventStatus,
)

__all__ = [
    "EscrowStatus",
    "OrderStatus",
    "ReleaseMode",
    "WebhookEventStatus",
]
