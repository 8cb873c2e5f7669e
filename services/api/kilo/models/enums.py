from enum import Enum


class FileStatus(str, Enum):
    """File ingestion state machine."""

    UPLOADING = "uploading"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


# Legal moves; READY and FAILED are terminal.
FILE_STATUS_TRANSITIONS: dict[FileStatus, frozenset[FileStatus]] = {
    FileStatus.UPLOADING: frozenset(
        {FileStatus.PROCESSING, FileStatus.READY, FileStatus.FAILED}
    ),
    FileStatus.PROCESSING: frozenset({FileStatus.READY, FileStatus.FAILED}),
    FileStatus.READY: frozenset(),
    FileStatus.FAILED: frozenset(),
}

# Statuses that count against the per-knowledge-base file quota
ACTIVE_FILE_STATUSES = (FileStatus.UPLOADING, FileStatus.PROCESSING, FileStatus.READY)


def can_transition(current: FileStatus, target: FileStatus) -> bool:
    """Check whether a file may move from `current` to `target`."""
    if current == target:
        return True
    return target in FILE_STATUS_TRANSITIONS[current]


class MessageRole(str, Enum):
    """Chat message author."""

    USER = "user"
    ASSISTANT = "assistant"
