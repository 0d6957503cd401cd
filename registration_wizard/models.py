from __future__ import annotations

from datetime import datetime
from enum import Enum, IntEnum

from pydantic import BaseModel, ConfigDict, Field


class WizardBaseModel(BaseModel):
    """Base model with strict validation and forbidden unknown fields."""

    model_config = ConfigDict(extra="forbid", strict=True)


class WizardStep(IntEnum):
    IDENTITY = 0
    BUSINESS = 1
    REVIEW = 2
    COMPLETION = 3


TOTAL_STEPS = len(WizardStep)


class VerificationOperation(str, Enum):
    SEND_CODE = "send_code"
    CONFIRM_CODE = "confirm_code"
    VALIDATE_DOCUMENT = "validate_document"
    SUBMIT_APPLICATION = "submit_application"


class SessionState(str, Enum):
    IDLE = "idle"
    CODE_SENT = "code_sent"
    VERIFIED = "verified"
    FAILED = "failed"


class StepStatus(str, Enum):
    COMPLETED = "completed"
    ACTIVE = "active"
    PENDING = "pending"


class FinalValidation(WizardBaseModel):
    model_config = ConfigDict(extra="forbid", strict=True, frozen=True)

    identity_verified: bool
    tax_document_validated: bool
    data_complete: bool
    terms_accepted: bool


class RegistrationRecord(WizardBaseModel):
    model_config = ConfigDict(extra="forbid", strict=True, frozen=True)

    identity_number: str | None = Field(default=None, pattern=r"^\d{12}$")
    name: str | None = None
    otp: str | None = Field(default=None, pattern=r"^\d{6}$")
    tax_document_number: str | None = Field(default=None, pattern=r"^[A-Z]{5}[0-9]{4}[A-Z]$")
    organization_type: str | None = None
    social_category: str | None = None
    gender: str | None = None
    disability: bool | None = None
    enterprise_name: str | None = None
    submission_timestamp: datetime | None = None
    application_id: str | None = None
    status: str | None = None
    terms_accepted: bool | None = None
    final_validation: FinalValidation | None = None


# Fields each step is allowed to write into the record.
STEP_FIELDS: dict[WizardStep, tuple[str, ...]] = {
    WizardStep.IDENTITY: ("identity_number", "name", "otp"),
    WizardStep.BUSINESS: (
        "tax_document_number",
        "organization_type",
        "social_category",
        "gender",
        "disability",
        "enterprise_name",
    ),
    WizardStep.REVIEW: (
        "submission_timestamp",
        "application_id",
        "status",
        "terms_accepted",
        "final_validation",
    ),
    WizardStep.COMPLETION: (),
}

REQUIRED_FIELDS: dict[WizardStep, tuple[str, ...]] = {
    WizardStep.IDENTITY: ("name", "identity_number"),
    WizardStep.BUSINESS: STEP_FIELDS[WizardStep.BUSINESS],
}

# Field that carries the asynchronous verification of each verifiable step.
VERIFIED_FIELD: dict[WizardStep, str] = {
    WizardStep.IDENTITY: "identity_number",
    WizardStep.BUSINESS: "tax_document_number",
}

OPERATION_STEP: dict[VerificationOperation, WizardStep] = {
    VerificationOperation.SEND_CODE: WizardStep.IDENTITY,
    VerificationOperation.CONFIRM_CODE: WizardStep.IDENTITY,
    VerificationOperation.VALIDATE_DOCUMENT: WizardStep.BUSINESS,
    VerificationOperation.SUBMIT_APPLICATION: WizardStep.REVIEW,
}


class ValidationResult(WizardBaseModel):
    ok: bool
    errors: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def passed(cls) -> ValidationResult:
        return cls(ok=True)

    @classmethod
    def from_errors(cls, errors: dict[str, str]) -> ValidationResult:
        return cls(ok=not errors, errors=dict(errors))


class FieldFeedback(WizardBaseModel):
    field: str
    value: str
    error: str | None = None


class VerificationOutcome(WizardBaseModel):
    operation: VerificationOperation
    accepted: bool
    reason: str | None = None


class VerificationSession(BaseModel):
    step: WizardStep
    field: str
    state: SessionState = SessionState.IDLE
    value: str | None = None
    confirmed_code: str | None = None
    reason: str | None = None
    in_flight: set[VerificationOperation] = Field(default_factory=set)

    @property
    def code_sent(self) -> bool:
        return self.state is not SessionState.IDLE and self.value is not None

    @property
    def verified(self) -> bool:
        return self.state is SessionState.VERIFIED


class ProgressEntry(WizardBaseModel):
    index: int
    label: str
    status: StepStatus


class WizardView(WizardBaseModel):
    position: WizardStep
    record: RegistrationRecord
    progress: list[ProgressEntry]
    completion_percent: float
    identity_verified: bool = False
    tax_document_validated: bool = False
