from .controller import WizardController, create_controller
from .events import EventKind, EventNotifier, EventSink, InMemoryEventSink, WizardEvent
from .exceptions import (
    CompletenessError,
    FormatError,
    IllegalTransition,
    RecoverableWizardError,
    StaleOperation,
    VerificationBusy,
    VerificationRejected,
    WizardError,
)
from .logging import configure_logging, mask_sensitive
from .export import build_form_schema, build_receipt, receipt_filename, render_receipt_json
from .models import (
    FieldFeedback,
    FinalValidation,
    ProgressEntry,
    RegistrationRecord,
    SessionState,
    StepStatus,
    ValidationResult,
    VerificationOperation,
    VerificationOutcome,
    VerificationSession,
    WizardStep,
    WizardView,
)
from .progress import completion_percent, project
from .settings import WizardSettings
from .store import StepDataStore
from .verification import AsyncioDelay, DelayProvider, VerificationSimulator

__all__ = [
    "WizardController",
    "create_controller",
    "EventKind",
    "EventNotifier",
    "EventSink",
    "InMemoryEventSink",
    "WizardEvent",
    "CompletenessError",
    "FormatError",
    "IllegalTransition",
    "RecoverableWizardError",
    "StaleOperation",
    "VerificationBusy",
    "VerificationRejected",
    "WizardError",
    "configure_logging",
    "mask_sensitive",
    "build_form_schema",
    "build_receipt",
    "receipt_filename",
    "render_receipt_json",
    "FieldFeedback",
    "FinalValidation",
    "ProgressEntry",
    "RegistrationRecord",
    "SessionState",
    "StepStatus",
    "ValidationResult",
    "VerificationOperation",
    "VerificationOutcome",
    "VerificationSession",
    "WizardStep",
    "WizardView",
    "completion_percent",
    "project",
    "WizardSettings",
    "StepDataStore",
    "AsyncioDelay",
    "DelayProvider",
    "VerificationSimulator",
]
