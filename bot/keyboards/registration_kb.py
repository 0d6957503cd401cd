from aiogram.types import KeyboardButton, ReplyKeyboardMarkup, ReplyKeyboardRemove

from registration_wizard.options import DISABILITY_OPTIONS, GENDERS, ORGANIZATION_TYPES, SOCIAL_CATEGORIES

BACK_TEXT = "⬅ Назад / Back"
RESEND_OTP_TEXT = "🔁 Resend OTP"
ACCEPT_TERMS_TEXT = "☑ I agree to the terms and conditions"
SUBMIT_TEXT = "📨 Submit Application"
EDIT_IDENTITY_TEXT = "✏ Edit Personal Information"
EDIT_BUSINESS_TEXT = "✏ Edit Business Information"
RECEIPT_TEXT = "📄 Download Receipt"
RESTART_TEXT = "🆕 Start New Registration"


def _options_keyboard(options: list[str], *, with_back: bool = True) -> ReplyKeyboardMarkup:
    rows = [[KeyboardButton(text=option)] for option in options]
    if with_back:
        rows.append([KeyboardButton(text=BACK_TEXT)])
    return ReplyKeyboardMarkup(keyboard=rows, resize_keyboard=True, one_time_keyboard=True)


def organization_type_keyboard() -> ReplyKeyboardMarkup:
    return _options_keyboard(ORGANIZATION_TYPES)


def social_category_keyboard() -> ReplyKeyboardMarkup:
    return _options_keyboard(SOCIAL_CATEGORIES)


def gender_keyboard() -> ReplyKeyboardMarkup:
    return _options_keyboard(GENDERS)


def disability_keyboard() -> ReplyKeyboardMarkup:
    return _options_keyboard(list(DISABILITY_OPTIONS))


def otp_keyboard() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        keyboard=[[KeyboardButton(text=RESEND_OTP_TEXT)]],
        resize_keyboard=True,
    )


def back_keyboard() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        keyboard=[[KeyboardButton(text=BACK_TEXT)]],
        resize_keyboard=True,
        one_time_keyboard=True,
    )


def review_keyboard() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        keyboard=[
            [KeyboardButton(text=ACCEPT_TERMS_TEXT)],
            [KeyboardButton(text=SUBMIT_TEXT)],
            [KeyboardButton(text=EDIT_IDENTITY_TEXT), KeyboardButton(text=EDIT_BUSINESS_TEXT)],
            [KeyboardButton(text=BACK_TEXT)],
        ],
        resize_keyboard=True,
    )


def completion_keyboard() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        keyboard=[[KeyboardButton(text=RECEIPT_TEXT)], [KeyboardButton(text=RESTART_TEXT)]],
        resize_keyboard=True,
    )


def keyboard_for(state_name: str) -> ReplyKeyboardMarkup | ReplyKeyboardRemove:
    builders = {
        "OTP": otp_keyboard,
        "TAX_DOCUMENT": back_keyboard,
        "ORGANIZATION_TYPE": organization_type_keyboard,
        "SOCIAL_CATEGORY": social_category_keyboard,
        "GENDER": gender_keyboard,
        "DISABILITY": disability_keyboard,
        "ENTERPRISE_NAME": back_keyboard,
        "REVIEW": review_keyboard,
        "DONE": completion_keyboard,
    }
    builder = builders.get(state_name)
    return builder() if builder else ReplyKeyboardRemove()
