import enum


class Feature(str, enum.Enum):
    """Quota-tracked features (plan_limits.feature / usage_events.feature)."""
    AI_CHAT_MESSAGE = "ai_chat_message"
    WIZARD_STEP_COMPLETION = "wizard_step_completion"
    API_CALL_GENERIC = "api_call_generic"
    ACTIVE_WIZARD = "active_wizard"
    IMAGE_GENERATION = "image_generation"


class CredentialPlatform(str, enum.Enum):
    DISCORD = "DISCORD"
    TELEGRAM = "TELEGRAM"
    ENS = "ENS"
    LUKSO_UP = "LUKSO_UP"
    OTHER = "OTHER"


# Step types whose mandatory completion is graded by verified_data.passed
QUIZ_STEP_TYPES = frozenset({"quizmaster_basic", "quizmaster_ai"})
