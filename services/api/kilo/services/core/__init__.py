"""Core orchestration services for business logic."""

from kilo.services.core.chat import (
    AnswerStream,
    InvalidConversation,
    build_system_prompt,
    get_session_messages,
    list_sessions,
    normalize_messages,
    open_answer_stream,
    record_chat_completion,
    resolve_session,
)
from kilo.services.core.documents import (
    count_ready_files,
    delete_file,
    get_file_for_user,
    get_file_stats,
    list_files,
    sync_file_status,
    upload_file,
    validate_upload,
)
from kilo.services.core.errors import PersistenceError, QuotaExceeded, UploadRejected
from kilo.services.core.knowledge_bases import (
    create_knowledge_base,
    delete_knowledge_base,
    describe,
    get_knowledge_base,
    list_knowledge_bases,
    update_knowledge_base,
)

__all__ = [
    # chat
    "AnswerStream",
    "InvalidConversation",
    "build_system_prompt",
    "get_session_messages",
    "list_sessions",
    "normalize_messages",
    "open_answer_stream",
    "record_chat_completion",
    "resolve_session",
    # documents
    "count_ready_files",
    "delete_file",
    "get_file_for_user",
    "get_file_stats",
    "list_files",
    "sync_file_status",
    "upload_file",
    "validate_upload",
    # errors
    "PersistenceError",
    "QuotaExceeded",
    "UploadRejected",
    # knowledge_bases
    "create_knowledge_base",
    "delete_knowledge_base",
    "describe",
    "get_knowledge_base",
    "list_knowledge_bases",
    "update_knowledge_base",
]
