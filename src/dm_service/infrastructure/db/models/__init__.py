"""Import all models so Base.metadata knows every table."""
from dm_service.infrastructure.db.models.conversation import ConversationModel
from dm_service.infrastructure.db.models.message import MessageModel
from dm_service.infrastructure.db.models.profile import ProfileModel

__all__ = [
    "ConversationModel",
    "MessageModel",
    "ProfileModel",
]
