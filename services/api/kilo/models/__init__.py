from .enums import FileStatus, MessageRole
from .knowledge_base import KnowledgeBase
from .file import File, InvalidStatusTransition
from .chat import ChatMessage, ChatSession
from .message_rating import MessageRating
from .usage_record import UsageRecord

__all__ = [
    "FileStatus",
    "MessageRole",
    "KnowledgeBase",
    "File",
    "InvalidStatusTransition",
    "ChatSession",
    "ChatMessage",
    "MessageRating",
    "UsageRecord",
]
