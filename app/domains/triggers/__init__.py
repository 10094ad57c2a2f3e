from app.domains.triggers.services import SocialTriggers, TriggerRunner, IMG_SRC_PATTERN

__all__ = [
    "SocialTriggers", "TriggerRunner", "IMG_SRC_PATTERN",
]
