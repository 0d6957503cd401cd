from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Protocol

import structlog
from pydantic import Field

from .logging import mask_sensitive
from .models import VerificationOperation, WizardBaseModel, WizardStep
from .validators import mask_identity_number


class EventKind(str, Enum):
    VERIFICATION_STARTED = "verification-started"
    VERIFICATION_SUCCEEDED = "verification-succeeded"
    VERIFICATION_FAILED = "verification-failed"
    STEP_ADVANCED = "step-advanced"
    SUBMISSION_SUCCEEDED = "submission-succeeded"
    SUBMISSION_FAILED = "submission-failed"


class WizardEvent(WizardBaseModel):
    kind: EventKind
    step: WizardStep
    operation: VerificationOperation | None = None
    reason: str | None = None
    details: dict[str, str] = Field(default_factory=dict)
    timestamp: datetime


class EventSink(Protocol):
    """Receiver of semantic wizard events, e.g. a toast presenter."""

    def publish(self, event: WizardEvent) -> None:
        ...


@dataclass
class InMemoryEventSink:
    events: list[WizardEvent] = field(default_factory=list)

    def publish(self, event: WizardEvent) -> None:
        self.events.append(event)

    def kinds(self) -> list[EventKind]:
        return [event.kind for event in self.events]

    def drain(self) -> list[WizardEvent]:
        drained, self.events = self.events, []
        return drained


@dataclass
class EventNotifier:
    sink: EventSink
    logger: structlog.stdlib.BoundLogger

    def emit(
        self,
        kind: EventKind,
        *,
        step: WizardStep,
        operation: VerificationOperation | None = None,
        reason: str | None = None,
        details: dict[str, str] | None = None,
    ) -> WizardEvent:
        event = WizardEvent(
            kind=kind,
            step=step,
            operation=operation,
            reason=reason,
            details=dict(details or {}),
            timestamp=datetime.now(timezone.utc),
        )
        self.sink.publish(event)
        self.logger.info(
            "wizard_event",
            kind=kind.value,
            step=int(step),
            operation=operation.value if operation else None,
            reason=reason,
            details=self._masked_details(event.details),
            timestamp=event.timestamp.isoformat(),
        )
        return event

    @staticmethod
    def _masked_details(details: dict[str, str]) -> dict[str, str | None]:
        masked: dict[str, str | None] = {}
        for key, value in details.items():
            if key == "identity_number":
                masked[key] = mask_identity_number(value)
            elif key in {"otp", "code", "tax_document_number"}:
                masked[key] = mask_sensitive(value)
            else:
                masked[key] = value
        return masked
