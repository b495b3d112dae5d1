"""
Status lifecycle subsystem for JobSync.

`machine` holds the transition whitelists for training programs, job
applications and training applications; `history` applies validated
transitions to immutable records with an append-only audit trail.
"""

from .history import (  # noqa: F401
    StatusHistoryEntry,
    StatusLedger,
    StatusRecord,
    TransitionOutcome,
    TransitionRequest,
    apply_transition,
    validate_history,
)
from .machine import (  # noqa: F401
    APPLICATION,
    PROGRAM,
    TRAINING_APPLICATION,
    TransitionResult,
    describe_transitions,
    is_valid_status,
    valid_transitions,
    validate_transition,
)
