from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest
from structlog.testing import capture_logs

from registration_wizard import (
    CompletenessError,
    EventKind,
    FormatError,
    IllegalTransition,
    InMemoryEventSink,
    RegistrationRecord,
    SessionState,
    StepStatus,
    VerificationOperation,
    VerificationRejected,
    WizardController,
    WizardStep,
    build_receipt,
    create_controller,
)
from registration_wizard.controller import INVALID_OTP_MESSAGE, TERMS_MESSAGE

SEND = VerificationOperation.SEND_CODE
CONFIRM = VerificationOperation.CONFIRM_CODE
VALIDATE = VerificationOperation.VALIDATE_DOCUMENT

BUSINESS = {
    "tax_document_number": "ABCDE1234F",
    "organization_type": "Private Limited Company",
    "social_category": "General/Open",
    "gender": "Female",
    "disability": False,
    "enterprise_name": "Test Enterprise",
}

SUBMITTED_AT = datetime(2024, 5, 17, 10, 30, tzinfo=timezone.utc)


class ZeroDelay:
    async def wait(self, seconds: float) -> None:
        return None


class GatedDelay:
    """Holds waits of the given durations until released; other waits pass through."""

    def __init__(self, hold: set[float] | None = None) -> None:
        self.hold = hold
        self.gates: list[asyncio.Event] = []

    async def wait(self, seconds: float) -> None:
        if self.hold is not None and seconds not in self.hold:
            return
        gate = asyncio.Event()
        self.gates.append(gate)
        await gate.wait()


def _controller(delay=None) -> tuple[WizardController, InMemoryEventSink]:
    sink = InMemoryEventSink()
    controller = create_controller(sink=sink, delay=delay or ZeroDelay())
    controller.clock = lambda: SUBMITTED_AT
    return controller, sink


async def _pass_identity(controller: WizardController) -> None:
    await controller.request_verification(WizardStep.IDENTITY, SEND, "1234 5678 9012")
    await controller.request_verification(WizardStep.IDENTITY, CONFIRM, "123456")
    controller.advance({"identity_number": "1234 5678 9012", "name": "Test User"})


async def _pass_business(controller: WizardController, patch: dict | None = None) -> None:
    values = dict(patch or BUSINESS)
    await controller.request_verification(WizardStep.BUSINESS, VALIDATE, values["tax_document_number"])
    controller.advance(values)


async def _wait_for(predicate) -> None:
    for _ in range(100):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


def test_identity_step_with_reference_code_advances() -> None:
    async def _run() -> None:
        controller, sink = _controller()
        await _pass_identity(controller)

        record = controller.view().record
        assert controller.position is WizardStep.BUSINESS
        assert record.identity_number == "123456789012"
        assert record.name == "Test User"
        assert record.otp == "123456"
        assert sink.kinds() == [
            EventKind.VERIFICATION_STARTED,
            EventKind.VERIFICATION_SUCCEEDED,
            EventKind.VERIFICATION_STARTED,
            EventKind.VERIFICATION_SUCCEEDED,
            EventKind.STEP_ADVANCED,
        ]

    asyncio.run(_run())


def test_wrong_code_is_rejected_and_record_unchanged() -> None:
    async def _run() -> None:
        controller, sink = _controller()
        await controller.request_verification(WizardStep.IDENTITY, SEND, "1234 5678 9012")

        with pytest.raises(VerificationRejected) as exc_info:
            await controller.request_verification(WizardStep.IDENTITY, CONFIRM, "654321")
        assert exc_info.value.errors == {"otp": INVALID_OTP_MESSAGE}

        with pytest.raises(VerificationRejected):
            controller.advance({"identity_number": "123456789012", "name": "Test User"})

        assert controller.position is WizardStep.IDENTITY
        assert controller.view().record == RegistrationRecord()
        assert controller.verification_session(WizardStep.IDENTITY).state is SessionState.FAILED
        assert sink.events[-1].kind is EventKind.VERIFICATION_FAILED
        assert sink.events[-1].reason == "invalid code"

        # unlimited retries on the same sent code
        session = await controller.request_verification(WizardStep.IDENTITY, CONFIRM, "123456")
        assert session.verified

    asyncio.run(_run())


def test_submit_without_terms_fails_and_stays_on_review() -> None:
    async def _run() -> None:
        controller, sink = _controller()
        await _pass_identity(controller)
        await _pass_business(controller)
        assert controller.position is WizardStep.REVIEW

        with pytest.raises(CompletenessError) as exc_info:
            await controller.submit(terms_accepted=False)

        assert exc_info.value.errors == {"terms_accepted": TERMS_MESSAGE}
        assert controller.position is WizardStep.REVIEW
        assert sink.events[-1].kind is EventKind.SUBMISSION_FAILED
        assert sink.events[-1].reason == "terms_not_accepted"

    asyncio.run(_run())


def test_submit_stamps_metadata_and_completes() -> None:
    async def _run() -> None:
        controller, sink = _controller()
        await _pass_identity(controller)
        await _pass_business(controller)

        record = await controller.submit(terms_accepted=True)

        assert controller.position is WizardStep.COMPLETION
        assert record.application_id == f"UD{int(SUBMITTED_AT.timestamp() * 1000)}"
        assert record.status == "SUBMITTED"
        assert record.submission_timestamp == SUBMITTED_AT
        assert record.terms_accepted is True
        assert record.final_validation.identity_verified
        assert record.final_validation.tax_document_validated
        assert record.final_validation.data_complete
        assert sink.events[-1].kind is EventKind.SUBMISSION_SUCCEEDED
        assert build_receipt(record)["enterprise_name"] == "Test Enterprise"
        assert controller.view().completion_percent == 100

    asyncio.run(_run())


def test_advance_reports_missing_then_format_errors() -> None:
    async def _run() -> None:
        controller, _ = _controller()
        with pytest.raises(CompletenessError) as exc_info:
            controller.advance({"identity_number": "123456789012"})
        assert set(exc_info.value.errors) == {"name"}

        with pytest.raises(FormatError) as exc_info:
            controller.advance({"identity_number": "12345", "name": "Test User"})
        assert set(exc_info.value.errors) == {"identity_number"}

        with pytest.raises(FormatError):
            await controller.request_verification(WizardStep.IDENTITY, SEND, "12345")
        assert controller.position is WizardStep.IDENTITY

    asyncio.run(_run())


def test_confirm_requires_sent_code() -> None:
    async def _run() -> None:
        controller, sink = _controller()
        with pytest.raises(VerificationRejected) as exc_info:
            await controller.request_verification(WizardStep.IDENTITY, CONFIRM, "123456")
        assert "otp" in exc_info.value.errors
        assert sink.events == []

    asyncio.run(_run())


def test_changing_verified_value_requires_new_verification() -> None:
    async def _run() -> None:
        controller, _ = _controller()
        await controller.request_verification(WizardStep.IDENTITY, SEND, "123456789012")
        await controller.request_verification(WizardStep.IDENTITY, CONFIRM, "123456")

        unchanged = controller.field_change(WizardStep.IDENTITY, "identity_number", "1234 5678 9012")
        assert unchanged.value == "1234 5678 9012"
        assert controller.verification_session(WizardStep.IDENTITY).verified

        changed = controller.field_change(WizardStep.IDENTITY, "identity_number", "222233334444")
        assert changed.error is None
        assert not controller.verification_session(WizardStep.IDENTITY).verified

        with pytest.raises(VerificationRejected):
            controller.advance({"identity_number": "222233334444", "name": "Test User"})

    asyncio.run(_run())


def test_field_change_reports_errors_without_touching_record() -> None:
    controller, _ = _controller()
    feedback = controller.field_change(WizardStep.IDENTITY, "identity_number", "1234")
    assert feedback.error == "Please enter a valid 12-digit Aadhaar number"
    assert controller.field_change(WizardStep.IDENTITY, "name", "  ").error == "Name is required"
    assert controller.view().record == RegistrationRecord()

    with pytest.raises(IllegalTransition):
        controller.field_change(WizardStep.BUSINESS, "tax_document_number", "ABCDE1234F")
    with pytest.raises(IllegalTransition):
        controller.field_change(WizardStep.IDENTITY, "tax_document_number", "ABCDE1234F")


def test_illegal_transitions_raise() -> None:
    async def _run() -> None:
        controller, _ = _controller()
        with pytest.raises(IllegalTransition):
            controller.retreat()
        with pytest.raises(IllegalTransition):
            controller.edit_jump(WizardStep.IDENTITY)
        with pytest.raises(IllegalTransition):
            await controller.submit(terms_accepted=True)
        with pytest.raises(IllegalTransition):
            await controller.request_verification(WizardStep.IDENTITY, VALIDATE, "ABCDE1234F")
        with pytest.raises(IllegalTransition):
            await controller.request_verification(WizardStep.BUSINESS, VALIDATE, "ABCDE1234F")
        with pytest.raises(IllegalTransition):
            controller.advance({"identity_number": "123456789012", "name": "X", "gender": "Male"})

        await _pass_identity(controller)
        with pytest.raises(IllegalTransition):
            controller.edit_jump(WizardStep.IDENTITY)

        await _pass_business(controller)
        with pytest.raises(IllegalTransition):
            controller.advance({})
        with pytest.raises(IllegalTransition):
            controller.edit_jump(WizardStep.REVIEW)

    asyncio.run(_run())


def test_retreat_keeps_data_and_prefills() -> None:
    async def _run() -> None:
        controller, _ = _controller()
        await _pass_identity(controller)

        assert controller.retreat() is WizardStep.IDENTITY
        assert controller.prefill(WizardStep.IDENTITY) == {
            "identity_number": "123456789012",
            "name": "Test User",
            "otp": "123456",
        }
        assert controller.view().progress[0].status is StepStatus.ACTIVE

    asyncio.run(_run())


def test_edit_jump_requires_revalidation_of_edited_step() -> None:
    async def _run() -> None:
        controller, _ = _controller()
        await _pass_identity(controller)
        await _pass_business(controller)

        assert controller.edit_jump(WizardStep.BUSINESS) is WizardStep.BUSINESS
        assert controller.prefill(WizardStep.BUSINESS)["tax_document_number"] == "ABCDE1234F"

        edited = {**BUSINESS, "tax_document_number": "PQRSX6789Z"}
        with pytest.raises(VerificationRejected) as exc_info:
            controller.advance(edited)
        assert set(exc_info.value.errors) == {"tax_document_number"}

        await _pass_business(controller, edited)
        assert controller.position is WizardStep.REVIEW
        assert controller.view().record.tax_document_number == "PQRSX6789Z"
        assert controller.view().record.name == "Test User"

    asyncio.run(_run())


def test_reset_discards_record_and_sessions() -> None:
    async def _run() -> None:
        controller, _ = _controller()
        await _pass_identity(controller)
        await _pass_business(controller)

        assert controller.reset() is WizardStep.IDENTITY
        assert controller.view().record == RegistrationRecord()
        assert controller.verification_session(WizardStep.IDENTITY) is None
        assert controller.view().completion_percent == 0

    asyncio.run(_run())


def test_result_arriving_after_reset_is_dropped() -> None:
    async def _run() -> None:
        delay = GatedDelay()
        controller, sink = _controller(delay)

        pending = asyncio.create_task(controller.request_verification(WizardStep.IDENTITY, SEND, "123456789012"))
        await _wait_for(lambda: len(delay.gates) == 1)
        controller.reset()
        delay.gates[0].set()

        assert await pending is None
        assert controller.verification_session(WizardStep.IDENTITY) is None
        assert sink.kinds() == [EventKind.VERIFICATION_STARTED]

    asyncio.run(_run())


def test_duplicate_trigger_is_ignored_while_in_flight() -> None:
    async def _run() -> None:
        delay = GatedDelay()
        controller, sink = _controller(delay)

        pending = asyncio.create_task(controller.request_verification(WizardStep.IDENTITY, SEND, "123456789012"))
        await _wait_for(lambda: len(delay.gates) == 1)

        duplicate = await controller.request_verification(WizardStep.IDENTITY, SEND, "123456789012")
        assert duplicate.in_flight == {SEND}
        assert duplicate.state is SessionState.IDLE

        delay.gates[0].set()
        session = await pending
        assert session.state is SessionState.CODE_SENT
        assert sink.kinds() == [EventKind.VERIFICATION_STARTED, EventKind.VERIFICATION_SUCCEEDED]

    asyncio.run(_run())


def test_second_submit_while_submitting_is_ignored() -> None:
    async def _run() -> None:
        delay = GatedDelay(hold={3.0})
        controller, sink = _controller(delay)
        await _pass_identity(controller)
        await _pass_business(controller)

        pending = asyncio.create_task(controller.submit(terms_accepted=True))
        await _wait_for(lambda: len(delay.gates) == 1)
        assert await controller.submit(terms_accepted=True) is None

        delay.gates[0].set()
        record = await pending
        assert record.application_id.startswith("UD")
        assert sink.kinds().count(EventKind.SUBMISSION_SUCCEEDED) == 1

    asyncio.run(_run())


def test_submission_dropped_when_review_left_meanwhile() -> None:
    async def _run() -> None:
        delay = GatedDelay(hold={3.0})
        controller, _ = _controller(delay)
        await _pass_identity(controller)
        await _pass_business(controller)

        pending = asyncio.create_task(controller.submit(terms_accepted=True))
        await _wait_for(lambda: len(delay.gates) == 1)
        controller.edit_jump(WizardStep.IDENTITY)
        delay.gates[0].set()

        assert await pending is None
        assert controller.position is WizardStep.IDENTITY
        assert controller.view().record.application_id is None

    asyncio.run(_run())


def test_events_mask_identity_number_in_logs() -> None:
    async def _run() -> None:
        controller, _ = _controller()
        with capture_logs() as logs:
            await controller.request_verification(WizardStep.IDENTITY, SEND, "123456789012")

        succeeded = [entry for entry in logs if entry.get("kind") == "verification-succeeded"]
        assert succeeded[0]["details"] == {"identity_number": "XXXX XXXX 9012"}
        assert "123456789012" not in str(logs)

    asyncio.run(_run())


def test_send_code_after_reset_is_not_blocked_by_previous_run() -> None:
    async def _run() -> None:
        delay = GatedDelay()
        controller, sink = _controller(delay)

        previous = asyncio.create_task(controller.request_verification(WizardStep.IDENTITY, SEND, "123456789012"))
        await _wait_for(lambda: len(delay.gates) == 1)
        controller.reset()

        fresh = asyncio.create_task(controller.request_verification(WizardStep.IDENTITY, SEND, "123456789012"))
        await _wait_for(lambda: len(delay.gates) == 2)
        delay.gates[0].set()
        delay.gates[1].set()

        assert await previous is None
        session = await fresh
        assert session.state is SessionState.CODE_SENT
        assert session.value == "123456789012"
        assert controller.verification_session(WizardStep.IDENTITY) is session
        assert sink.kinds() == [
            EventKind.VERIFICATION_STARTED,
            EventKind.VERIFICATION_STARTED,
            EventKind.VERIFICATION_SUCCEEDED,
        ]

    asyncio.run(_run())


def test_document_validation_after_retreat_is_not_blocked_by_previous_visit() -> None:
    async def _run() -> None:
        delay = GatedDelay(hold={2.0})
        controller, _ = _controller(delay)
        first_pass = asyncio.create_task(_pass_identity(controller))
        for index in range(2):
            await _wait_for(lambda: len(delay.gates) == index + 1)
            delay.gates[index].set()
        await first_pass

        previous = asyncio.create_task(controller.request_verification(WizardStep.BUSINESS, VALIDATE, "ABCDE1234F"))
        await _wait_for(lambda: len(delay.gates) == 3)
        controller.retreat()

        again = asyncio.create_task(_pass_identity(controller))
        for index in range(3, 5):
            await _wait_for(lambda: len(delay.gates) == index + 1)
            delay.gates[index].set()
        await again

        fresh = asyncio.create_task(controller.request_verification(WizardStep.BUSINESS, VALIDATE, "ABCDE1234F"))
        await _wait_for(lambda: len(delay.gates) == 6)
        delay.gates[5].set()
        session = await fresh
        assert session.verified

        delay.gates[2].set()
        assert await previous is None
        assert controller.verification_session(WizardStep.BUSINESS).verified

    asyncio.run(_run())


def test_submit_after_reset_is_not_blocked_by_previous_submission() -> None:
    async def _run() -> None:
        delay = GatedDelay(hold={3.0})
        controller, sink = _controller(delay)
        await _pass_identity(controller)
        await _pass_business(controller)

        previous = asyncio.create_task(controller.submit(terms_accepted=True))
        await _wait_for(lambda: len(delay.gates) == 1)
        controller.reset()
        await _pass_identity(controller)
        await _pass_business(controller)

        fresh = asyncio.create_task(controller.submit(terms_accepted=True))
        await _wait_for(lambda: len(delay.gates) == 2)
        delay.gates[1].set()
        record = await fresh
        delay.gates[0].set()

        assert await previous is None
        assert record.application_id.startswith("UD")
        assert controller.position is WizardStep.COMPLETION
        assert sink.kinds().count(EventKind.SUBMISSION_SUCCEEDED) == 1

    asyncio.run(_run())


def test_retreat_then_identical_advance_gives_identical_record() -> None:
    async def _run() -> None:
        controller, _ = _controller()
        await _pass_identity(controller)
        before = controller.view().record

        controller.retreat()
        await _pass_identity(controller)

        assert controller.position is WizardStep.BUSINESS
        assert controller.view().record == before

    asyncio.run(_run())


def test_wizard_after_reset_behaves_like_a_fresh_one() -> None:
    async def _run() -> None:
        controller, sink = _controller()
        await _pass_identity(controller)
        await _pass_business(controller)
        await controller.submit(terms_accepted=True)

        controller.reset()
        sink.drain()
        await _pass_identity(controller)

        fresh, fresh_sink = _controller()
        await _pass_identity(fresh)

        assert controller.position is fresh.position is WizardStep.BUSINESS
        assert controller.view().record == fresh.view().record
        assert sink.kinds() == fresh_sink.kinds()
        assert controller.view().tax_document_validated is False

    asyncio.run(_run())


def test_view_reports_live_verification_flags() -> None:
    async def _run() -> None:
        controller, _ = _controller()
        view = controller.view()
        assert (view.identity_verified, view.tax_document_validated) == (False, False)

        await _pass_identity(controller)
        assert controller.view().identity_verified
        assert not controller.view().tax_document_validated

        await _pass_business(controller)
        assert controller.view().tax_document_validated

    asyncio.run(_run())


def test_send_code_with_entered_fields_requires_name() -> None:
    async def _run() -> None:
        controller, sink = _controller()
        with pytest.raises(CompletenessError) as exc_info:
            await controller.request_verification(WizardStep.IDENTITY, SEND, "123456789012", fields={"name": "  "})
        assert exc_info.value.errors == {"name": "Name is required"}
        assert sink.events == []

        session = await controller.request_verification(
            WizardStep.IDENTITY, SEND, "123456789012", fields={"name": "Test User"}
        )
        assert session.code_sent

    asyncio.run(_run())
