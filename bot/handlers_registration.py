from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from aiogram import Router
from aiogram.filters import CommandStart
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State
from aiogram.types import BufferedInputFile, Message

from bot.fsm_states import RegistrationFSM
from bot.keyboards.registration_kb import (
    ACCEPT_TERMS_TEXT,
    BACK_TEXT,
    EDIT_BUSINESS_TEXT,
    EDIT_IDENTITY_TEXT,
    RECEIPT_TEXT,
    RESEND_OTP_TEXT,
    RESTART_TEXT,
    SUBMIT_TEXT,
    keyboard_for,
)
from bot.notifications import ChatNotificationSink
from bot.render import render
from registration_wizard import (
    RecoverableWizardError,
    VerificationOperation,
    WizardController,
    WizardStep,
    create_controller,
    receipt_filename,
    render_receipt_json,
)
from registration_wizard.validators import parse_disability_answer

logger = logging.getLogger(__name__)

ControllerFactory = Callable[[ChatNotificationSink], WizardController]

OTP_NOT_SENT_MESSAGE = "OTP could not be sent. Please check your Aadhaar number and try again"

PROMPTS = {
    "IDENTITY_NUMBER": "Step 1: Enter your 12-digit Aadhaar number (XXXX XXXX XXXX).",
    "APPLICANT_NAME": "Enter the name of the entrepreneur as per Aadhaar card.",
    "OTP": "Enter the 6-digit OTP sent to your registered mobile number. (For demo: use OTP 123456)",
    "TAX_DOCUMENT": "Step 2: Enter your PAN number (Format: ABCDE1234F).",
    "ORGANIZATION_TYPE": "Select the type of organization.",
    "SOCIAL_CATEGORY": "Select your social category.",
    "GENDER": "Select gender.",
    "DISABILITY": "Specially abled (DIVYANG)?",
    "ENTERPRISE_NAME": "Enter the name of the enterprise.",
    "REVIEW": "Step 3: Review your details, accept the terms and submit.",
    "DONE": "You can download the receipt or start a new registration.",
}

# Business fields asked one by one after PAN validation, with the state that follows each.
_BUSINESS_CHAIN: dict[str, tuple[str, State]] = {
    "ORGANIZATION_TYPE": ("organization_type", RegistrationFSM.SOCIAL_CATEGORY),
    "SOCIAL_CATEGORY": ("social_category", RegistrationFSM.GENDER),
    "GENDER": ("gender", RegistrationFSM.DISABILITY),
    "DISABILITY": ("disability", RegistrationFSM.ENTERPRISE_NAME),
}


def _default_factory(sink: ChatNotificationSink) -> WizardController:
    return create_controller(sink=sink)


def _state_name(state: State) -> str:
    return state.state.split(":", 1)[1]


@dataclass(slots=True)
class ChatWizard:
    controller: WizardController
    sink: ChatNotificationSink


@dataclass(slots=True)
class RegistrationFlow:
    controller_factory: ControllerFactory = _default_factory
    chats: dict[str, ChatWizard] = field(default_factory=dict)

    @staticmethod
    def _chat_key(state: FSMContext) -> str:
        return f"{state.key.chat_id}:{state.key.user_id}"

    def _wizard(self, state: FSMContext) -> ChatWizard:
        key = self._chat_key(state)
        wizard = self.chats.get(key)
        if wizard is None:
            sink = ChatNotificationSink()
            wizard = ChatWizard(controller=self.controller_factory(sink), sink=sink)
            self.chats[key] = wizard
        return wizard

    async def _reply(
        self,
        state: FSMContext,
        wizard: ChatWizard,
        target: State,
        *,
        error: str | None = None,
        **extra: Any,
    ) -> dict[str, Any]:
        await state.set_state(target)
        name = _state_name(target)
        data = await state.get_data()
        text = render(wizard.controller.view(), PROMPTS[name], terms_accepted=bool(data.get("terms_accepted")))
        reply: dict[str, Any] = {
            "state": name,
            "position": int(wizard.controller.position),
            "text": text,
            "notifications": wizard.sink.drain_messages(),
        }
        if error:
            reply["error"] = error
        reply.update(extra)
        return reply

    async def _remember(self, state: FSMContext, section: str, **values: Any) -> dict[str, Any]:
        data = await state.get_data()
        patch = dict(data.get(section, {}))
        patch.update(values)
        await state.update_data({section: patch})
        return patch

    async def start(self, state: FSMContext) -> dict[str, Any]:
        wizard = self._wizard(state)
        wizard.controller.reset()
        wizard.sink.pending.clear()
        await state.set_data({"identity": {}, "business": {}, "terms_accepted": False})
        logger.info("FSM step entered: IDENTITY_NUMBER")
        return await self._reply(state, wizard, RegistrationFSM.IDENTITY_NUMBER)

    async def identity_number(self, state: FSMContext, *, text: str) -> dict[str, Any]:
        wizard = self._wizard(state)
        feedback = wizard.controller.field_change(WizardStep.IDENTITY, "identity_number", text)
        if feedback.error:
            return await self._reply(state, wizard, RegistrationFSM.IDENTITY_NUMBER, error=feedback.error)
        await self._remember(state, "identity", identity_number=feedback.value)
        return await self._reply(state, wizard, RegistrationFSM.APPLICANT_NAME)

    async def applicant_name(self, state: FSMContext, *, text: str) -> dict[str, Any]:
        wizard = self._wizard(state)
        feedback = wizard.controller.field_change(WizardStep.IDENTITY, "name", text.strip())
        if feedback.error:
            return await self._reply(state, wizard, RegistrationFSM.APPLICANT_NAME, error=feedback.error)
        patch = await self._remember(state, "identity", name=feedback.value)
        return await self._send_code(state, wizard, patch)

    async def _send_code(self, state: FSMContext, wizard: ChatWizard, identity: dict[str, Any]) -> dict[str, Any]:
        try:
            session = await wizard.controller.request_verification(
                WizardStep.IDENTITY,
                VerificationOperation.SEND_CODE,
                identity.get("identity_number", ""),
                fields={"name": identity.get("name")},
            )
        except RecoverableWizardError as exc:
            return await self._reply(state, wizard, RegistrationFSM.IDENTITY_NUMBER, error=exc.reason)
        if session is None or not session.code_sent:
            return await self._reply(state, wizard, RegistrationFSM.IDENTITY_NUMBER, error=OTP_NOT_SENT_MESSAGE)
        logger.info("FSM step entered: OTP")
        return await self._reply(state, wizard, RegistrationFSM.OTP)

    async def otp(self, state: FSMContext, *, text: str) -> dict[str, Any]:
        wizard = self._wizard(state)
        data = await state.get_data()
        identity = dict(data.get("identity", {}))
        if text == RESEND_OTP_TEXT:
            return await self._send_code(state, wizard, identity)

        controller = wizard.controller
        feedback = controller.field_change(WizardStep.IDENTITY, "otp", text)
        if feedback.error:
            return await self._reply(state, wizard, RegistrationFSM.OTP, error=feedback.error)
        try:
            session = await controller.request_verification(
                WizardStep.IDENTITY, VerificationOperation.CONFIRM_CODE, feedback.value
            )
            if session is None or not session.verified:
                return await self._reply(state, wizard, RegistrationFSM.OTP)
            identity["otp"] = feedback.value
            controller.advance(identity)
        except RecoverableWizardError as exc:
            return await self._reply(state, wizard, RegistrationFSM.OTP, error=exc.reason)

        await state.update_data(identity=identity)
        logger.info("FSM step entered: TAX_DOCUMENT")
        return await self._reply(state, wizard, RegistrationFSM.TAX_DOCUMENT)

    async def tax_document(self, state: FSMContext, *, text: str) -> dict[str, Any]:
        wizard = self._wizard(state)
        controller = wizard.controller
        if text == BACK_TEXT:
            controller.retreat()
            logger.info("FSM step entered: IDENTITY_NUMBER (back)")
            return await self._reply(state, wizard, RegistrationFSM.IDENTITY_NUMBER)

        feedback = controller.field_change(WizardStep.BUSINESS, "tax_document_number", text)
        if feedback.error:
            return await self._reply(state, wizard, RegistrationFSM.TAX_DOCUMENT, error=feedback.error)
        try:
            await controller.request_verification(
                WizardStep.BUSINESS, VerificationOperation.VALIDATE_DOCUMENT, feedback.value
            )
        except RecoverableWizardError as exc:
            return await self._reply(state, wizard, RegistrationFSM.TAX_DOCUMENT, error=exc.reason)
        await self._remember(state, "business", tax_document_number=feedback.value)
        return await self._reply(state, wizard, RegistrationFSM.ORGANIZATION_TYPE)

    async def business_choice(self, state: FSMContext, *, text: str) -> dict[str, Any]:
        wizard = self._wizard(state)
        current = await state.get_state()
        name = (current or "").split(":", 1)[-1]
        field_name, next_state = _BUSINESS_CHAIN[name]
        if text == BACK_TEXT:
            return await self._reply(state, wizard, RegistrationFSM.TAX_DOCUMENT)

        feedback = wizard.controller.field_change(WizardStep.BUSINESS, field_name, text)
        if feedback.error:
            return await self._reply(state, wizard, getattr(RegistrationFSM, name), error=feedback.error)
        value: Any = parse_disability_answer(feedback.value) if field_name == "disability" else feedback.value
        await self._remember(state, "business", **{field_name: value})
        return await self._reply(state, wizard, next_state)

    async def enterprise_name(self, state: FSMContext, *, text: str) -> dict[str, Any]:
        wizard = self._wizard(state)
        if text == BACK_TEXT:
            return await self._reply(state, wizard, RegistrationFSM.DISABILITY)
        feedback = wizard.controller.field_change(WizardStep.BUSINESS, "enterprise_name", text.strip())
        if feedback.error:
            return await self._reply(state, wizard, RegistrationFSM.ENTERPRISE_NAME, error=feedback.error)
        patch = await self._remember(state, "business", enterprise_name=feedback.value)
        try:
            wizard.controller.advance(patch)
        except RecoverableWizardError as exc:
            return await self._reply(state, wizard, RegistrationFSM.TAX_DOCUMENT, error=exc.reason)
        logger.info("FSM step entered: REVIEW")
        return await self._reply(state, wizard, RegistrationFSM.REVIEW)

    async def review_action(self, state: FSMContext, *, text: str) -> dict[str, Any]:
        wizard = self._wizard(state)
        controller = wizard.controller
        if text == ACCEPT_TERMS_TEXT:
            data = await state.get_data()
            await state.update_data(terms_accepted=not data.get("terms_accepted", False))
            return await self._reply(state, wizard, RegistrationFSM.REVIEW)
        if text == EDIT_IDENTITY_TEXT:
            controller.edit_jump(WizardStep.IDENTITY)
            return await self._reply(state, wizard, RegistrationFSM.IDENTITY_NUMBER)
        if text == EDIT_BUSINESS_TEXT:
            controller.edit_jump(WizardStep.BUSINESS)
            return await self._reply(state, wizard, RegistrationFSM.TAX_DOCUMENT)
        if text == BACK_TEXT:
            controller.retreat()
            return await self._reply(state, wizard, RegistrationFSM.TAX_DOCUMENT)
        if text != SUBMIT_TEXT:
            return await self._reply(state, wizard, RegistrationFSM.REVIEW, error="Choose an action on the keyboard")

        data = await state.get_data()
        try:
            record = await controller.submit(bool(data.get("terms_accepted")))
        except RecoverableWizardError as exc:
            return await self._reply(state, wizard, RegistrationFSM.REVIEW, error=exc.reason)
        if record is None:
            return await self._reply(state, wizard, RegistrationFSM.REVIEW)
        logger.info("FSM step entered: DONE | application_id=%s", record.application_id)
        return await self._reply(state, wizard, RegistrationFSM.DONE, application_id=record.application_id)

    async def completion_action(self, state: FSMContext, *, text: str) -> dict[str, Any]:
        wizard = self._wizard(state)
        if text == RESTART_TEXT:
            return await self.start(state)
        if text != RECEIPT_TEXT:
            return await self._reply(state, wizard, RegistrationFSM.DONE, error="Choose an action on the keyboard")
        record = wizard.controller.view().record
        return await self._reply(
            state,
            wizard,
            RegistrationFSM.DONE,
            document=render_receipt_json(record),
            filename=receipt_filename(record),
        )


async def _answer(message: Message, reply: dict[str, Any]) -> None:
    for note in reply.get("notifications", []):
        await message.answer(note)
    if reply.get("error"):
        await message.answer(f"⚠ {reply['error']}")
    if "document" in reply:
        await message.answer_document(
            BufferedInputFile(reply["document"].encode(), filename=reply["filename"]),
        )
    await message.answer(reply["text"], reply_markup=keyboard_for(reply["state"]))


def create_registration_router(flow: RegistrationFlow) -> Router:
    router = Router(name="registration_wizard")

    @router.message(CommandStart())
    async def cmd_start(message: Message, state: FSMContext) -> None:
        await _answer(message, await flow.start(state))

    @router.message(RegistrationFSM.IDENTITY_NUMBER)
    async def on_identity_number(message: Message, state: FSMContext) -> None:
        await _answer(message, await flow.identity_number(state, text=message.text or ""))

    @router.message(RegistrationFSM.APPLICANT_NAME)
    async def on_applicant_name(message: Message, state: FSMContext) -> None:
        await _answer(message, await flow.applicant_name(state, text=message.text or ""))

    @router.message(RegistrationFSM.OTP)
    async def on_otp(message: Message, state: FSMContext) -> None:
        await _answer(message, await flow.otp(state, text=message.text or ""))

    @router.message(RegistrationFSM.TAX_DOCUMENT)
    async def on_tax_document(message: Message, state: FSMContext) -> None:
        await _answer(message, await flow.tax_document(state, text=message.text or ""))

    @router.message(RegistrationFSM.ORGANIZATION_TYPE)
    @router.message(RegistrationFSM.SOCIAL_CATEGORY)
    @router.message(RegistrationFSM.GENDER)
    @router.message(RegistrationFSM.DISABILITY)
    async def on_business_choice(message: Message, state: FSMContext) -> None:
        await _answer(message, await flow.business_choice(state, text=message.text or ""))

    @router.message(RegistrationFSM.ENTERPRISE_NAME)
    async def on_enterprise_name(message: Message, state: FSMContext) -> None:
        await _answer(message, await flow.enterprise_name(state, text=message.text or ""))

    @router.message(RegistrationFSM.REVIEW)
    async def on_review(message: Message, state: FSMContext) -> None:
        await _answer(message, await flow.review_action(state, text=message.text or ""))

    @router.message(RegistrationFSM.DONE)
    async def on_done(message: Message, state: FSMContext) -> None:
        await _answer(message, await flow.completion_action(state, text=message.text or ""))

    return router
