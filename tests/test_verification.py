import asyncio

import pytest

from registration_wizard.exceptions import VerificationBusy
from registration_wizard.models import VerificationOperation, WizardStep
from registration_wizard.settings import WizardSettings
from registration_wizard.verification import INVALID_CODE_REASON, VerificationSimulator


class RecordingDelay:
    def __init__(self) -> None:
        self.waited: list[float] = []

    async def wait(self, seconds: float) -> None:
        self.waited.append(seconds)


class GatedDelay:
    """Blocks every wait until the test releases its gate."""

    def __init__(self) -> None:
        self.gates: list[asyncio.Event] = []

    async def wait(self, seconds: float) -> None:
        gate = asyncio.Event()
        self.gates.append(gate)
        await gate.wait()


async def _until(predicate) -> None:
    for _ in range(100):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


def test_reference_code_is_the_only_accepted_code() -> None:
    async def _run() -> None:
        delay = RecordingDelay()
        simulator = VerificationSimulator(settings=WizardSettings(), delay=delay)

        sent = await simulator.send_code("123456789012")
        good = await simulator.confirm_code("123456")
        bad = await simulator.confirm_code("654321")
        retried = await simulator.confirm_code("123456")

        assert sent.accepted
        assert good.accepted and good.operation is VerificationOperation.CONFIRM_CODE
        assert not bad.accepted
        assert bad.reason == INVALID_CODE_REASON
        assert retried.accepted
        assert delay.waited == [2.0, 2.0, 2.0, 2.0]

    asyncio.run(_run())


def test_document_validation_and_submission_use_configured_delays() -> None:
    async def _run() -> None:
        delay = RecordingDelay()
        settings = WizardSettings(verification_delay_seconds=0.5, submission_delay_seconds=1.5, reference_otp="000000")
        simulator = VerificationSimulator(settings=settings, delay=delay)

        assert (await simulator.validate_document("ABCDE1234F")).accepted
        assert not (await simulator.validate_document("abcde1234f")).accepted
        assert (await simulator.submit_application()).accepted
        assert (await simulator.confirm_code("000000")).accepted
        assert delay.waited == [0.5, 0.5, 1.5, 0.5]

    asyncio.run(_run())


def test_duplicate_trigger_while_in_flight_is_rejected() -> None:
    async def _run() -> None:
        delay = GatedDelay()
        simulator = VerificationSimulator(settings=WizardSettings(), delay=delay)

        first = asyncio.create_task(simulator.send_code("123456789012"))
        await _until(lambda: len(delay.gates) == 1)
        assert simulator.is_in_flight(WizardStep.IDENTITY, "identity_number", VerificationOperation.SEND_CODE)

        with pytest.raises(VerificationBusy):
            await simulator.send_code("123456789012")

        delay.gates[0].set()
        assert (await first).accepted
        assert not simulator.is_in_flight(WizardStep.IDENTITY, "identity_number", VerificationOperation.SEND_CODE)

    asyncio.run(_run())


def test_operations_on_same_field_complete_in_trigger_order() -> None:
    async def _run() -> None:
        delay = GatedDelay()
        simulator = VerificationSimulator(settings=WizardSettings(), delay=delay)
        finished: list[str] = []

        send = asyncio.create_task(simulator.send_code("123456789012"))
        send.add_done_callback(lambda _: finished.append("send"))
        await _until(lambda: len(delay.gates) == 1)

        confirm = asyncio.create_task(simulator.confirm_code("123456"))
        confirm.add_done_callback(lambda _: finished.append("confirm"))
        await asyncio.sleep(0)
        # confirm waits for the field lock, so no second round trip has started yet
        assert len(delay.gates) == 1
        assert simulator.is_in_flight(WizardStep.IDENTITY, "identity_number", VerificationOperation.CONFIRM_CODE)

        delay.gates[0].set()
        await send
        await _until(lambda: len(delay.gates) == 2)
        delay.gates[1].set()
        await confirm

        assert finished == ["send", "confirm"]

    asyncio.run(_run())


def test_different_fields_proceed_independently() -> None:
    async def _run() -> None:
        delay = GatedDelay()
        simulator = VerificationSimulator(settings=WizardSettings(), delay=delay)

        send = asyncio.create_task(simulator.send_code("123456789012"))
        validate = asyncio.create_task(simulator.validate_document("ABCDE1234F"))
        await _until(lambda: len(delay.gates) == 2)

        delay.gates[1].set()
        assert (await validate).accepted
        assert not send.done()

        delay.gates[0].set()
        assert (await send).accepted

    asyncio.run(_run())


def test_settings_read_wizard_prefixed_environment(monkeypatch) -> None:
    monkeypatch.setenv("WIZARD_REFERENCE_OTP", "111111")
    monkeypatch.setenv("WIZARD_VERIFICATION_DELAY_SECONDS", "0")

    async def _run() -> None:
        simulator = VerificationSimulator(settings=WizardSettings(), delay=RecordingDelay())
        assert (await simulator.confirm_code("111111")).accepted
        assert not (await simulator.confirm_code("123456")).accepted

    asyncio.run(_run())
    assert WizardSettings().verification_delay_seconds == 0.0


def test_generations_do_not_block_each_other() -> None:
    async def _run() -> None:
        delay = GatedDelay()
        simulator = VerificationSimulator(settings=WizardSettings(), delay=delay)

        old = asyncio.create_task(simulator.send_code("123456789012", generation=0))
        await _until(lambda: len(delay.gates) == 1)
        new = asyncio.create_task(simulator.send_code("123456789012", generation=1))
        await _until(lambda: len(delay.gates) == 2)

        assert simulator.is_in_flight(WizardStep.IDENTITY, "identity_number", VerificationOperation.SEND_CODE, 0)
        assert simulator.is_in_flight(WizardStep.IDENTITY, "identity_number", VerificationOperation.SEND_CODE, 1)

        delay.gates[1].set()
        assert (await new).accepted
        assert not old.done()

        delay.gates[0].set()
        assert (await old).accepted
        assert simulator._field_locks == {}

    asyncio.run(_run())
