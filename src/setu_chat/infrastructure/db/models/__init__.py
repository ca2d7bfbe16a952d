"""Import all models so Alembic can discover them via Base.metadata."""
from setu_chat.infrastructure.db.models.conversation import ConversationModel
from setu_chat.infrastructure.db.models.member import ConversationMemberModel
from setu_chat.infrastructure.db.models.message import MessageModel
from setu_chat.infrastructure.db.models.outbox import OutboxMessageModel
from setu_chat.infrastructure.db.models.profile import ProfileModel
from setu_chat.infrastructure.db.models.reaction import MessageReactionModel
from setu_chat.infrastructure.db.models.read_receipt import ReadReceiptModel

__all__ = [
    "ConversationMemberModel",
    "ConversationModel",
    "MessageModel",
    "MessageReactionModel",
    "OutboxMessageModel",
    "ProfileModel",
    "ReadReceiptModel",
]
