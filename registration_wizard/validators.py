from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from typing import Any

from .models import REQUIRED_FIELDS, ValidationResult, WizardStep
from .options import DISABILITY_OPTIONS, FIELD_OPTIONS

IDENTITY_NUMBER_RE = re.compile(r"[0-9]{12}")
TAX_DOCUMENT_RE = re.compile(r"[A-Z]{5}[0-9]{4}[A-Z]")
OTP_RE = re.compile(r"[0-9]{6}")
_DIGITS_RE = re.compile(r"[0-9]+")

FORMAT_MESSAGES = {
    "identity_number": "Please enter a valid 12-digit Aadhaar number",
    "otp": "Please enter a valid 6-digit OTP",
    "tax_document_number": "Please enter a valid PAN number (Format: ABCDE1234F)",
    "organization_type": "Please select a listed organization type",
    "social_category": "Please select a listed social category",
    "gender": "Please select a listed gender",
    "disability": "Please answer Yes or No",
    "name": "Name is required",
    "enterprise_name": "Enterprise name is required",
}

MISSING_MESSAGES = {
    "identity_number": "Aadhaar number is required",
    "name": "Name is required",
    "tax_document_number": "PAN number is required",
    "organization_type": "Please select organization type",
    "social_category": "Please select social category",
    "gender": "Please select gender",
    "disability": "Please select this field",
    "enterprise_name": "Enterprise name is required",
}


def _compact(value: str) -> str:
    return "".join(value.split())


def is_valid_identity_number(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    return IDENTITY_NUMBER_RE.fullmatch(_compact(value)) is not None


def is_valid_tax_document(value: Any) -> bool:
    return isinstance(value, str) and TAX_DOCUMENT_RE.fullmatch(value) is not None


def is_valid_otp(value: Any) -> bool:
    return isinstance(value, str) and OTP_RE.fullmatch(value) is not None


def is_listed_option(field: str, value: Any) -> bool:
    return isinstance(value, str) and value in FIELD_OPTIONS.get(field, ())


def _is_filled_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


FIELD_CHECKS: dict[str, Callable[[Any], bool]] = {
    "identity_number": is_valid_identity_number,
    "otp": is_valid_otp,
    "tax_document_number": is_valid_tax_document,
    "organization_type": lambda value: is_listed_option("organization_type", value),
    "social_category": lambda value: is_listed_option("social_category", value),
    "gender": lambda value: is_listed_option("gender", value),
    "disability": lambda value: isinstance(value, bool),
    "name": _is_filled_text,
    "enterprise_name": _is_filled_text,
}


def is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def check_field(field: str, value: Any) -> str | None:
    """Return the error message for ``value`` or ``None`` when it passes."""
    check = FIELD_CHECKS.get(field)
    if check is None or check(value):
        return None
    return FORMAT_MESSAGES[field]


def check_step_completeness(step: WizardStep, values: Mapping[str, Any]) -> ValidationResult:
    errors = {
        field: MISSING_MESSAGES[field]
        for field in REQUIRED_FIELDS.get(step, ())
        if is_missing(values.get(field))
    }
    return ValidationResult.from_errors(errors)


def validate_fields(values: Mapping[str, Any]) -> ValidationResult:
    errors: dict[str, str] = {}
    for field, value in values.items():
        if is_missing(value):
            continue
        message = check_field(field, value)
        if message is not None:
            errors[field] = message
    return ValidationResult.from_errors(errors)


def validate_step(step: WizardStep, values: Mapping[str, Any]) -> ValidationResult:
    """Completeness first, then syntax of whatever is present."""
    completeness = check_step_completeness(step, values)
    syntax = validate_fields(values)
    errors = dict(syntax.errors)
    errors.update(completeness.errors)
    return ValidationResult.from_errors(errors)


def format_identity_number(value: str) -> str:
    compact = _compact(value)
    if not _DIGITS_RE.fullmatch(compact):
        return compact
    return " ".join(compact[i : i + 4] for i in range(0, len(compact), 4))


def compact_identity_number(value: str) -> str:
    return _compact(value)


def normalize_tax_document(value: str) -> str:
    return _compact(value).upper()


def format_otp(value: str) -> str:
    return _compact(value)


def mask_identity_number(value: str | None) -> str:
    if not value:
        return ""
    compact = _compact(value)
    if IDENTITY_NUMBER_RE.fullmatch(compact):
        return f"XXXX XXXX {compact[-4:]}"
    if len(compact) <= 4:
        return "X" * len(compact)
    return "X" * (len(compact) - 4) + compact[-4:]


def parse_disability_answer(answer: str) -> bool | None:
    return DISABILITY_OPTIONS.get(answer.strip().capitalize())


FORMATTERS: dict[str, Callable[[str], str]] = {
    "identity_number": format_identity_number,
    "tax_document_number": normalize_tax_document,
    "otp": format_otp,
}


def format_field(field: str, raw_value: str) -> str:
    formatter = FORMATTERS.get(field)
    if formatter is None:
        return raw_value
    return formatter(raw_value)
