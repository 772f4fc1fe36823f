"""Three step selection wizard: identifier, file, confirmation."""

from tangleplay.backend.wizard.controller import WizardController
from tangleplay.backend.wizard.state import (
    LOOKUP_FAILED_NOTICE,
    SelectionState,
    WizardEvent,
    WizardEventType,
    WizardStep,
    reduce,
)

__all__ = [
    "LOOKUP_FAILED_NOTICE",
    "SelectionState",
    "WizardController",
    "WizardEvent",
    "WizardEventType",
    "WizardStep",
    "reduce",
]
