"""Documents handed to the presentation layer for download."""

from __future__ import annotations

import json
from typing import Any

from .models import STEP_FIELDS, RegistrationRecord, WizardStep
from .options import DISABILITY_OPTIONS, FIELD_LABELS, FIELD_OPTIONS, STEP_LABELS
from .validators import IDENTITY_NUMBER_RE, OTP_RE, TAX_DOCUMENT_RE

RECEIPT_CONTENT_TYPE = "application/json"


def build_receipt(record: RegistrationRecord) -> dict[str, Any]:
    """Key/value snapshot of a submitted record, ready for serialization."""
    if not record.application_id:
        raise ValueError("record has not been submitted")
    return record.model_dump(mode="json")


def receipt_filename(record: RegistrationRecord) -> str:
    if not record.application_id:
        raise ValueError("record has not been submitted")
    return f"udyam-registration-{record.application_id}.json"


def render_receipt_json(record: RegistrationRecord) -> str:
    return json.dumps(build_receipt(record), indent=2, ensure_ascii=False)


_FIELD_PATTERNS = {
    "identity_number": IDENTITY_NUMBER_RE.pattern,
    "otp": OTP_RE.pattern,
    "tax_document_number": TAX_DOCUMENT_RE.pattern,
}


def _field_schema(name: str) -> dict[str, Any]:
    entry: dict[str, Any] = {"name": name, "label": FIELD_LABELS[name], "required": True}
    if name in FIELD_OPTIONS:
        entry.update(type="select", options=list(FIELD_OPTIONS[name]))
    elif name == "disability":
        entry.update(type="select", options=list(DISABILITY_OPTIONS))
    else:
        entry["type"] = "text"
    if name in _FIELD_PATTERNS:
        entry["pattern"] = f"^{_FIELD_PATTERNS[name]}$"
    return entry


def build_form_schema() -> dict[str, Any]:
    """Structure and validation rules of the data-entry steps."""
    steps = {}
    for step in (WizardStep.IDENTITY, WizardStep.BUSINESS):
        steps[f"step{int(step) + 1}"] = {
            "title": STEP_LABELS[step],
            "fields": [_field_schema(name) for name in STEP_FIELDS[step]],
        }
    return {
        "formStructure": steps,
        "validationRules": {
            "aadhaar": "12-digit numeric format",
            "pan": "5 letters + 4 digits + 1 letter format",
            "otp": "6-digit numeric code",
            "realTimeValidation": True,
            "bilingual": True,
        },
    }
