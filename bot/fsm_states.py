from aiogram.fsm.state import State, StatesGroup


class RegistrationFSM(StatesGroup):
    IDENTITY_NUMBER = State()
    APPLICANT_NAME = State()
    OTP = State()
    TAX_DOCUMENT = State()
    ORGANIZATION_TYPE = State()
    SOCIAL_CATEGORY = State()
    GENDER = State()
    DISABILITY = State()
    ENTERPRISE_NAME = State()
    REVIEW = State()
    DONE = State()
