from __future__ import annotations


class WizardError(Exception):
    """Base class for every error raised by the registration wizard."""


class RecoverableWizardError(WizardError):
    """Raised when the user can fix the input and retry immediately."""

    def __init__(self, errors: dict[str, str]) -> None:
        self.errors = dict(errors)
        super().__init__("; ".join(f"{field}: {message}" for field, message in self.errors.items()))

    @property
    def reason(self) -> str:
        return next(iter(self.errors.values()), "")


class FormatError(RecoverableWizardError):
    """Raised when a field fails its pattern check."""


class CompletenessError(RecoverableWizardError):
    """Raised when a required field is missing."""


class VerificationRejected(RecoverableWizardError):
    """Raised when a simulated verification declines the supplied value."""


class StaleOperation(WizardError):
    """Raised when a verification result arrives after its step was exited."""


class IllegalTransition(WizardError):
    """Raised when the caller requests a transition the current state does not allow."""


class VerificationBusy(WizardError):
    """Raised when the same verification is triggered while still in flight."""
