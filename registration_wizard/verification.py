from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Protocol

import structlog

from .exceptions import VerificationBusy
from .models import VerificationOperation, VerificationOutcome, WizardStep
from .settings import WizardSettings
from .validators import is_valid_identity_number, is_valid_tax_document

INVALID_CODE_REASON = "invalid code"

VerificationKey = tuple[WizardStep, str, VerificationOperation, int]


class DelayProvider(Protocol):
    """Stand-in for network latency of a verification round trip."""

    async def wait(self, seconds: float) -> None:
        ...


class AsyncioDelay:
    async def wait(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


@dataclass
class VerificationSimulator:
    """Simulated OTP, PAN and submission checks with fixed latency.

    Every call belongs to a ``generation`` chosen by the caller. Within one
    generation at most one operation per (step, field, operation) key may be in
    flight, and operations on the same (step, field) pair complete in trigger
    order. Round trips of an older generation never block a newer one.
    """

    settings: WizardSettings
    delay: DelayProvider = field(default_factory=AsyncioDelay)
    _in_flight: set[VerificationKey] = field(default_factory=set)
    _field_locks: dict[tuple[WizardStep, str, int], asyncio.Lock] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.logger = structlog.get_logger("verification_simulator")

    def is_in_flight(
        self,
        step: WizardStep,
        field_name: str,
        operation: VerificationOperation,
        generation: int = 0,
    ) -> bool:
        return (step, field_name, operation, generation) in self._in_flight

    async def send_code(self, identity_number: str, *, generation: int = 0) -> VerificationOutcome:
        return await self._run(
            WizardStep.IDENTITY,
            "identity_number",
            VerificationOperation.SEND_CODE,
            identity_number,
            generation=generation,
        )

    async def confirm_code(self, code: str, *, generation: int = 0) -> VerificationOutcome:
        return await self._run(
            WizardStep.IDENTITY,
            "identity_number",
            VerificationOperation.CONFIRM_CODE,
            code,
            generation=generation,
        )

    async def validate_document(self, document_number: str, *, generation: int = 0) -> VerificationOutcome:
        return await self._run(
            WizardStep.BUSINESS,
            "tax_document_number",
            VerificationOperation.VALIDATE_DOCUMENT,
            document_number,
            generation=generation,
        )

    async def submit_application(self, *, generation: int = 0) -> VerificationOutcome:
        return await self._run(
            WizardStep.REVIEW,
            "application",
            VerificationOperation.SUBMIT_APPLICATION,
            "",
            generation=generation,
            delay_seconds=self.settings.submission_delay_seconds,
        )

    async def _run(
        self,
        step: WizardStep,
        field_name: str,
        operation: VerificationOperation,
        value: str,
        *,
        generation: int,
        delay_seconds: float | None = None,
    ) -> VerificationOutcome:
        key = (step, field_name, operation, generation)
        if key in self._in_flight:
            raise VerificationBusy(f"{operation.value} for {field_name} is already in flight")

        lock_key = (step, field_name, generation)
        self._in_flight.add(key)
        try:
            lock = self._field_locks.setdefault(lock_key, asyncio.Lock())
            async with lock:
                seconds = self.settings.verification_delay_seconds if delay_seconds is None else delay_seconds
                await self.delay.wait(seconds)
                outcome = self._decide(operation, value)
        finally:
            self._in_flight.discard(key)
            if not any(pending[0:2] == lock_key[0:2] and pending[3] == generation for pending in self._in_flight):
                self._field_locks.pop(lock_key, None)

        self.logger.debug(
            "verification_round_trip",
            step=int(step),
            field=field_name,
            operation=operation.value,
            generation=generation,
            accepted=outcome.accepted,
        )
        return outcome

    def _decide(self, operation: VerificationOperation, value: str) -> VerificationOutcome:
        if operation is VerificationOperation.SEND_CODE:
            if not is_valid_identity_number(value):
                return VerificationOutcome(operation=operation, accepted=False, reason="invalid identity number")
            return VerificationOutcome(operation=operation, accepted=True)

        if operation is VerificationOperation.CONFIRM_CODE:
            if value != self.settings.reference_otp:
                return VerificationOutcome(operation=operation, accepted=False, reason=INVALID_CODE_REASON)
            return VerificationOutcome(operation=operation, accepted=True)

        if operation is VerificationOperation.VALIDATE_DOCUMENT:
            if not is_valid_tax_document(value):
                return VerificationOutcome(operation=operation, accepted=False, reason="invalid PAN format")
            return VerificationOutcome(operation=operation, accepted=True)

        return VerificationOutcome(operation=operation, accepted=True)
