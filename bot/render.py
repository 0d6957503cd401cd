from __future__ import annotations

from registration_wizard import StepStatus, WizardStep, WizardView
from registration_wizard.validators import mask_identity_number

_STATUS_MARK = {
    StepStatus.COMPLETED: "✓",
    StepStatus.ACTIVE: "▶",
    StepStatus.PENDING: "·",
}


def render_progress(view: WizardView) -> str:
    steps = " | ".join(f"{_STATUS_MARK[entry.status]} {entry.index + 1}. {entry.label}" for entry in view.progress)
    return f"{steps}\nProgress: {view.completion_percent:.0f}%"


def _yes_no(value: bool | None) -> str:
    if value is None:
        return "-"
    return "Yes" if value else "No"


def render_summary(view: WizardView, *, terms_accepted: bool = False) -> str:
    record = view.record
    complete = all(
        [record.identity_number, record.name, record.tax_document_number, record.organization_type, record.enterprise_name]
    )
    lines = [
        "All Required Information Complete" if complete else "Missing Required Information",
        "",
        "Personal Information",
        f"• Aadhaar: {mask_identity_number(record.identity_number) or '-'}",
        f"• Name: {record.name or '-'}",
        f"• {'✓ Aadhaar Verified' if view.identity_verified else 'Aadhaar Not Verified'}",
        "",
        "Business Information",
        f"• PAN: {record.tax_document_number or '-'}{' (✓ Validated)' if view.tax_document_validated else ''}",
        f"• Organization: {record.organization_type or '-'}",
        f"• Social category: {record.social_category or '-'}",
        f"• Gender: {record.gender or '-'}",
        f"• Specially abled: {_yes_no(record.disability)}",
        f"• Enterprise: {record.enterprise_name or '-'}",
        "",
        f"Terms accepted: {_yes_no(terms_accepted)}",
    ]
    return "\n".join(lines)


def render_completion(view: WizardView) -> str:
    record = view.record
    submitted = record.submission_timestamp.isoformat() if record.submission_timestamp else "-"
    return "\n".join(
        [
            "Registration Submitted Successfully!",
            f"Application ID: {record.application_id}",
            f"Status: {record.status}",
            f"Submitted: {submitted}",
            f"Enterprise: {record.enterprise_name}",
        ]
    )


def render(view: WizardView, prompt: str = "", *, terms_accepted: bool = False) -> str:
    """Chat text for the current wizard position."""
    parts = [render_progress(view)]
    if view.position is WizardStep.REVIEW:
        parts.append(render_summary(view, terms_accepted=terms_accepted))
    elif view.position is WizardStep.COMPLETION:
        parts.append(render_completion(view))
    if prompt:
        parts.append(prompt)
    return "\n\n".join(parts)
