from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

from .events import EventKind, EventNotifier, EventSink, InMemoryEventSink
from .exceptions import (
    CompletenessError,
    FormatError,
    IllegalTransition,
    StaleOperation,
    VerificationBusy,
    VerificationRejected,
)
from .models import (
    OPERATION_STEP,
    STEP_FIELDS,
    TOTAL_STEPS,
    VERIFIED_FIELD,
    FieldFeedback,
    FinalValidation,
    RegistrationRecord,
    SessionState,
    VerificationOperation,
    VerificationOutcome,
    VerificationSession,
    WizardStep,
    WizardView,
)
from .options import STEP_LABELS
from .progress import completion_percent, project
from .settings import WizardSettings
from .store import StepDataStore
from .validators import (
    FORMAT_MESSAGES,
    MISSING_MESSAGES,
    check_field,
    check_step_completeness,
    compact_identity_number,
    format_field,
    format_otp,
    is_missing,
    is_valid_identity_number,
    is_valid_otp,
    is_valid_tax_document,
    parse_disability_answer,
    validate_fields,
)
from .verification import AsyncioDelay, DelayProvider, VerificationSimulator

INVALID_OTP_MESSAGE = "Invalid OTP. Please try again."
TERMS_MESSAGE = "Please agree to the terms and conditions before submitting"

_UNVERIFIED_MESSAGES = {
    WizardStep.IDENTITY: "Please verify your Aadhaar with the OTP first",
    WizardStep.BUSINESS: "Please validate your PAN number first",
}

Origin = tuple[WizardStep, int]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class WizardController:
    """State machine over the four registration steps.

    Positions: 0 identity, 1 business, 2 review, 3 completion. The record is
    only written through ``store`` and only after the owning step passed local
    validation and its simulated verification.
    """

    simulator: VerificationSimulator
    notifier: EventNotifier
    settings: WizardSettings = field(default_factory=WizardSettings)
    store: StepDataStore = field(default_factory=StepDataStore)
    clock: Callable[[], datetime] = _utcnow

    def __post_init__(self) -> None:
        self.logger = structlog.get_logger("wizard_controller")
        self._position = WizardStep.IDENTITY
        self._epoch = 0
        self._sessions: dict[WizardStep, VerificationSession] = {}
        self._verified_values: dict[WizardStep, str] = {}

    @property
    def position(self) -> WizardStep:
        return self._position

    def view(self) -> WizardView:
        labels = [STEP_LABELS[step] for step in WizardStep]
        record = self.store.snapshot()
        identity_verified, tax_document_validated = self._verification_flags(record)
        return WizardView(
            position=self._position,
            record=record,
            progress=project(int(self._position), TOTAL_STEPS, labels),
            completion_percent=completion_percent(int(self._position), TOTAL_STEPS),
            identity_verified=identity_verified,
            tax_document_validated=tax_document_validated,
        )

    def prefill(self, step: int) -> dict[str, Any]:
        """Previously merged values of ``step`` for re-populating its form."""
        record = self.store.snapshot()
        return {name: getattr(record, name) for name in STEP_FIELDS[WizardStep(step)] if getattr(record, name) is not None}

    def verification_session(self, step: int) -> VerificationSession | None:
        return self._sessions.get(WizardStep(step))

    def field_change(self, step: int, field_name: str, raw_value: str) -> FieldFeedback:
        active = self._require_active(step, "field change")
        if field_name not in STEP_FIELDS[active] or active not in VERIFIED_FIELD:
            raise IllegalTransition(f"field {field_name!r} is not editable on step {int(active)}")

        value = format_field(field_name, raw_value)
        if is_missing(value):
            error = MISSING_MESSAGES.get(field_name)
        elif field_name == "disability":
            error = None if parse_disability_answer(value) is not None else FORMAT_MESSAGES["disability"]
        else:
            error = check_field(field_name, value)

        session = self._sessions.get(active)
        if session is not None and field_name == session.field and session.value is not None:
            if self._session_value(field_name, value) != session.value:
                self._sessions[active] = self._new_session(active)
        return FieldFeedback(field=field_name, value=value, error=error)

    async def request_verification(
        self,
        step: int,
        operation: VerificationOperation,
        value: str,
        *,
        fields: Mapping[str, Any] | None = None,
    ) -> VerificationSession | None:
        """Run one simulated verification for the active step.

        ``fields`` are the other values currently entered on the step; when
        given, sending a code also requires the step's other mandatory fields.

        Returns the updated session, the untouched session when the same
        operation is still in flight, or ``None`` when the step was left before
        the result arrived.
        """
        active = self._require_active(step, "verification")
        if operation is VerificationOperation.SUBMIT_APPLICATION or OPERATION_STEP[operation] != active:
            raise IllegalTransition(f"{operation.value} is not available on step {int(active)}")

        session = self._sessions.setdefault(active, self._new_session(active))
        value = self._checked_verification_value(session, operation, value)
        if operation is VerificationOperation.SEND_CODE and fields is not None:
            completeness = check_step_completeness(active, {**fields, session.field: value})
            if not completeness.ok:
                raise CompletenessError(completeness.errors)

        if self.simulator.is_in_flight(active, session.field, operation, self._epoch):
            self.logger.info("verification_ignored_in_flight", step=int(active), operation=operation.value)
            return session

        origin = self._origin()
        session.in_flight.add(operation)
        self.notifier.emit(EventKind.VERIFICATION_STARTED, step=active, operation=operation)
        try:
            outcome = await self._dispatch(operation, value)
        except VerificationBusy:
            self.logger.info("verification_ignored_in_flight", step=int(active), operation=operation.value)
            return session
        finally:
            session.in_flight.discard(operation)

        try:
            self._ensure_current(origin, operation)
        except StaleOperation as exc:
            self.logger.debug("stale_operation_discarded", detail=str(exc))
            return None

        self._apply_outcome(session, outcome, value)
        return session

    def advance(self, patch: Mapping[str, Any]) -> WizardStep:
        step = self._position
        if step not in VERIFIED_FIELD:
            raise IllegalTransition(f"advance is not allowed from step {int(step)}")
        foreign = sorted(set(patch) - set(STEP_FIELDS[step]))
        if foreign:
            raise IllegalTransition(f"step {int(step)} cannot submit fields {foreign}")

        values = dict(patch)
        if step is WizardStep.IDENTITY and isinstance(values.get("identity_number"), str):
            values["identity_number"] = compact_identity_number(values["identity_number"])

        completeness = check_step_completeness(step, values)
        if not completeness.ok:
            self.logger.info("advance_blocked", step=int(step), missing=sorted(completeness.errors))
            raise CompletenessError(completeness.errors)
        syntax = validate_fields(values)
        if not syntax.ok:
            self.logger.info("advance_blocked", step=int(step), invalid=sorted(syntax.errors))
            raise FormatError(syntax.errors)

        verified_field = VERIFIED_FIELD[step]
        session = self._sessions.get(step)
        if session is None or not session.verified or session.value != values[verified_field]:
            raise VerificationRejected({verified_field: _UNVERIFIED_MESSAGES[step]})
        if step is WizardStep.IDENTITY:
            if values.get("otp") is None:
                values["otp"] = session.confirmed_code
            if values["otp"] != session.confirmed_code:
                raise VerificationRejected({"otp": INVALID_OTP_MESSAGE})

        self.store.merge(step, values)
        self._verified_values[step] = values[verified_field]
        self.notifier.emit(EventKind.STEP_ADVANCED, step=step, details={"next_step": str(int(step) + 1)})
        self._move_to(WizardStep(step + 1))
        return self._position

    def retreat(self) -> WizardStep:
        if self._position not in {WizardStep.BUSINESS, WizardStep.REVIEW}:
            raise IllegalTransition(f"retreat is not allowed from step {int(self._position)}")
        self._move_to(WizardStep(self._position - 1))
        return self._position

    def edit_jump(self, target: int) -> WizardStep:
        if self._position is not WizardStep.REVIEW:
            raise IllegalTransition(f"edit is only allowed from review, not step {int(self._position)}")
        if target not in {WizardStep.IDENTITY, WizardStep.BUSINESS}:
            raise IllegalTransition(f"cannot edit step {target}")
        self._move_to(WizardStep(target))
        return self._position

    async def submit(self, terms_accepted: bool) -> RegistrationRecord | None:
        """Simulate the final submission and stamp submission metadata.

        Returns ``None`` when a submission is already running or the review step
        was left while the submission was in flight.
        """
        if self._position is not WizardStep.REVIEW:
            raise IllegalTransition(f"submit is only allowed from review, not step {int(self._position)}")
        if self.simulator.is_in_flight(
            WizardStep.REVIEW, "application", VerificationOperation.SUBMIT_APPLICATION, self._epoch
        ):
            self.logger.info("submission_ignored_in_flight")
            return None

        errors = {name: MISSING_MESSAGES[name] for name in self.store.missing_fields()}
        if not terms_accepted:
            errors["terms_accepted"] = TERMS_MESSAGE
        if errors:
            reason = "terms_not_accepted" if list(errors) == ["terms_accepted"] else "incomplete_record"
            self.notifier.emit(EventKind.SUBMISSION_FAILED, step=WizardStep.REVIEW, reason=reason)
            raise CompletenessError(errors)

        origin = self._origin()
        try:
            outcome = await self.simulator.submit_application(generation=self._epoch)
        except VerificationBusy:
            self.logger.info("submission_ignored_in_flight")
            return None

        try:
            self._ensure_current(origin, VerificationOperation.SUBMIT_APPLICATION)
        except StaleOperation as exc:
            self.logger.debug("stale_operation_discarded", detail=str(exc))
            return None

        if not outcome.accepted:
            self.notifier.emit(EventKind.SUBMISSION_FAILED, step=WizardStep.REVIEW, reason=outcome.reason)
            raise VerificationRejected({"submission": outcome.reason or "submission rejected"})

        record = self._stamp_submission()
        self.notifier.emit(
            EventKind.SUBMISSION_SUCCEEDED,
            step=WizardStep.REVIEW,
            details={"application_id": record.application_id or ""},
        )
        self._move_to(WizardStep.COMPLETION)
        return record

    def reset(self) -> WizardStep:
        self.store.clear()
        self._verified_values.clear()
        self._move_to(WizardStep.IDENTITY)
        self.logger.info("wizard_reset", epoch=self._epoch)
        return self._position

    def _stamp_submission(self) -> RegistrationRecord:
        record = self.store.snapshot()
        submitted_at = self.clock()
        identity_verified, tax_document_validated = self._verification_flags(record)
        final_validation = FinalValidation(
            identity_verified=identity_verified,
            tax_document_validated=tax_document_validated,
            data_complete=self.store.is_record_complete(),
            terms_accepted=True,
        )
        return self.store.merge(
            WizardStep.REVIEW,
            {
                "submission_timestamp": submitted_at,
                "application_id": f"{self.settings.application_id_prefix}{int(submitted_at.timestamp() * 1000)}",
                "status": self.settings.submission_status,
                "terms_accepted": True,
                "final_validation": final_validation,
            },
        )

    def _verification_flags(self, record: RegistrationRecord) -> tuple[bool, bool]:
        """Whether the record still holds the values each step's verification authorized."""
        identity = self._verified_values.get(WizardStep.IDENTITY)
        tax_document = self._verified_values.get(WizardStep.BUSINESS)
        return (
            identity is not None and identity == record.identity_number,
            tax_document is not None and tax_document == record.tax_document_number,
        )

    def _checked_verification_value(
        self,
        session: VerificationSession,
        operation: VerificationOperation,
        value: str,
    ) -> str:
        if operation is VerificationOperation.SEND_CODE:
            value = compact_identity_number(value)
            if not is_valid_identity_number(value):
                raise FormatError({"identity_number": FORMAT_MESSAGES["identity_number"]})
            return value
        if operation is VerificationOperation.CONFIRM_CODE:
            value = format_otp(value)
            if not is_valid_otp(value):
                raise FormatError({"otp": FORMAT_MESSAGES["otp"]})
            if not session.code_sent:
                raise VerificationRejected({"otp": "Please request an OTP first"})
            return value
        if not is_valid_tax_document(value):
            raise FormatError({"tax_document_number": FORMAT_MESSAGES["tax_document_number"]})
        return value

    async def _dispatch(self, operation: VerificationOperation, value: str) -> VerificationOutcome:
        generation = self._epoch
        if operation is VerificationOperation.SEND_CODE:
            return await self.simulator.send_code(value, generation=generation)
        if operation is VerificationOperation.CONFIRM_CODE:
            return await self.simulator.confirm_code(value, generation=generation)
        return await self.simulator.validate_document(value, generation=generation)

    def _apply_outcome(self, session: VerificationSession, outcome: VerificationOutcome, value: str) -> None:
        operation = outcome.operation
        if not outcome.accepted:
            session.state = SessionState.FAILED
            session.reason = outcome.reason
            self.notifier.emit(EventKind.VERIFICATION_FAILED, step=session.step, operation=operation, reason=outcome.reason)
            message = INVALID_OTP_MESSAGE if operation is VerificationOperation.CONFIRM_CODE else FORMAT_MESSAGES[session.field]
            raise VerificationRejected({"otp" if operation is VerificationOperation.CONFIRM_CODE else session.field: message})

        session.reason = None
        if operation is VerificationOperation.SEND_CODE:
            session.state = SessionState.CODE_SENT
            session.value = value
            session.confirmed_code = None
            details = {"identity_number": value}
        elif operation is VerificationOperation.CONFIRM_CODE:
            session.state = SessionState.VERIFIED
            session.confirmed_code = value
            details = {"identity_number": session.value or ""}
        else:
            session.state = SessionState.VERIFIED
            session.value = value
            details = {"tax_document_number": value}
        self.notifier.emit(EventKind.VERIFICATION_SUCCEEDED, step=session.step, operation=operation, details=details)

    def _require_active(self, step: int, action: str) -> WizardStep:
        requested = WizardStep(step)
        if requested is not self._position:
            raise IllegalTransition(f"{action} for step {int(requested)} while step {int(self._position)} is active")
        return requested

    def _origin(self) -> Origin:
        return self._position, self._epoch

    def _ensure_current(self, origin: Origin, operation: VerificationOperation) -> None:
        if origin != self._origin():
            raise StaleOperation(
                f"{operation.value} started on step {int(origin[0])} (epoch {origin[1]}) "
                f"finished on step {int(self._position)} (epoch {self._epoch})"
            )

    def _move_to(self, step: WizardStep) -> None:
        self._position = step
        self._epoch += 1
        self._sessions.clear()

    @staticmethod
    def _new_session(step: WizardStep) -> VerificationSession:
        return VerificationSession(step=step, field=VERIFIED_FIELD[step])

    @staticmethod
    def _session_value(field_name: str, value: str) -> str:
        if field_name == "identity_number":
            return compact_identity_number(value)
        return value


def create_controller(
    *,
    settings: WizardSettings | None = None,
    sink: EventSink | None = None,
    delay: DelayProvider | None = None,
) -> WizardController:
    settings = settings or WizardSettings()
    simulator = VerificationSimulator(settings=settings, delay=delay or AsyncioDelay())
    notifier = EventNotifier(sink=sink or InMemoryEventSink(), logger=structlog.get_logger("wizard_events"))
    return WizardController(simulator=simulator, notifier=notifier, settings=settings)
