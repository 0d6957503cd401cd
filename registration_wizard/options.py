"""Static option lists and bilingual labels published by the registration portal."""

from __future__ import annotations

from .models import WizardStep

ORGANIZATION_TYPES = [
    "Proprietorship Firm",
    "Partnership Firm",
    "Hindu Undivided Family (HUF)",
    "Private Limited Company",
    "Public Limited Company",
    "Limited Liability Partnership (LLP)",
    "Cooperative Society",
    "Self Help Group",
]

SOCIAL_CATEGORIES = [
    "General/Open",
    "Scheduled Caste (SC)",
    "Scheduled Tribe (ST)",
    "Other Backward Class (OBC)",
]

GENDERS = ["Male", "Female", "Other"]

# Display answer -> record value for the disability flag.
DISABILITY_OPTIONS = {"No": False, "Yes": True}

FIELD_OPTIONS: dict[str, list[str]] = {
    "organization_type": ORGANIZATION_TYPES,
    "social_category": SOCIAL_CATEGORIES,
    "gender": GENDERS,
}

STEP_LABELS: dict[WizardStep, str] = {
    WizardStep.IDENTITY: "Aadhaar Verification",
    WizardStep.BUSINESS: "PAN & Business Details",
    WizardStep.REVIEW: "Review & Confirm",
    WizardStep.COMPLETION: "Completion",
}

FIELD_LABELS: dict[str, str] = {
    "identity_number": "Aadhaar Number / आधार संख्या",
    "name": "Name of Entrepreneur / उद्यमी का नाम",
    "otp": "Enter OTP / ओटीपी दर्ज करें",
    "tax_document_number": "PAN Number / पैन संख्या",
    "organization_type": "Type of Organization / संगठन का प्रकार",
    "social_category": "Social Category / सामाजिक श्रेणी",
    "gender": "Gender / लिंग",
    "disability": "Specially Abled (DIVYANG) / विशेष रूप से सक्षम",
    "enterprise_name": "Name of Enterprise / उद्यम का नाम",
}
