from __future__ import annotations

from dataclasses import dataclass, field

from registration_wizard import EventKind, VerificationOperation, WizardEvent

from bot import metrics

NOTIFICATION_TEXT: dict[tuple[EventKind, VerificationOperation | None], str] = {
    (EventKind.VERIFICATION_STARTED, VerificationOperation.SEND_CODE): "Sending OTP...",
    (EventKind.VERIFICATION_STARTED, VerificationOperation.CONFIRM_CODE): "Verifying...",
    (EventKind.VERIFICATION_STARTED, VerificationOperation.VALIDATE_DOCUMENT): "Validating PAN...",
    (EventKind.VERIFICATION_SUCCEEDED, VerificationOperation.SEND_CODE): (
        "OTP Sent Successfully. Please check your registered mobile number for the OTP"
    ),
    (EventKind.VERIFICATION_SUCCEEDED, VerificationOperation.CONFIRM_CODE): (
        "Aadhaar Verified Successfully. Your identity has been verified"
    ),
    (EventKind.VERIFICATION_SUCCEEDED, VerificationOperation.VALIDATE_DOCUMENT): (
        "PAN Validated Successfully. PAN number is valid and active"
    ),
    (EventKind.SUBMISSION_SUCCEEDED, None): (
        "Application Submitted Successfully. Your Udyam registration has been submitted for processing"
    ),
}

SUBMISSION_FAILED_TEXT = {
    "terms_not_accepted": "Terms & Conditions Required. Please agree to the terms and conditions before submitting",
    "incomplete_record": "Missing Required Information. Please complete all required fields before submitting",
}


def translate(event: WizardEvent) -> str | None:
    """Chat text for a wizard event, ``None`` for events without a toast."""
    if event.kind is EventKind.VERIFICATION_FAILED:
        return f"Verification failed: {event.reason}"
    if event.kind is EventKind.SUBMISSION_FAILED:
        return SUBMISSION_FAILED_TEXT.get(event.reason or "", "Submission failed")
    return NOTIFICATION_TEXT.get((event.kind, event.operation))


@dataclass
class ChatNotificationSink:
    pending: list[WizardEvent] = field(default_factory=list)

    def publish(self, event: WizardEvent) -> None:
        self.pending.append(event)
        metrics.count_event(event.kind.value)

    def drain_messages(self) -> list[str]:
        events, self.pending = self.pending, []
        return [text for text in (translate(event) for event in events) if text]
