from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from .exceptions import FormatError, IllegalTransition
from .models import REQUIRED_FIELDS, STEP_FIELDS, RegistrationRecord, WizardStep
from .validators import FORMAT_MESSAGES, is_missing


class StepDataStore:
    """Single mutation path into the accumulated registration record."""

    def __init__(self) -> None:
        self._record = RegistrationRecord()

    def merge(self, step_index: int, patch: Mapping[str, Any]) -> RegistrationRecord:
        step = WizardStep(step_index)
        foreign = sorted(set(patch) - set(STEP_FIELDS[step]))
        if foreign:
            raise IllegalTransition(f"step {int(step)} cannot write fields {foreign}")

        payload = {name: getattr(self._record, name) for name in RegistrationRecord.model_fields}
        payload.update(patch)
        try:
            record = RegistrationRecord.model_validate(payload)
        except ValidationError as exc:
            raise FormatError(self._field_errors(exc)) from exc
        self._record = record
        return record

    def snapshot(self) -> RegistrationRecord:
        return self._record

    def missing_fields(self) -> list[str]:
        return [
            field
            for step in sorted(REQUIRED_FIELDS)
            for field in REQUIRED_FIELDS[step]
            if is_missing(getattr(self._record, field))
        ]

    def is_record_complete(self) -> bool:
        return not self.missing_fields()

    def clear(self) -> None:
        self._record = RegistrationRecord()

    @staticmethod
    def _field_errors(exc: ValidationError) -> dict[str, str]:
        errors: dict[str, str] = {}
        for error in exc.errors():
            location = error.get("loc") or ("record",)
            field = str(location[0])
            errors.setdefault(field, FORMAT_MESSAGES.get(field, error.get("msg", "invalid value")))
        return errors
