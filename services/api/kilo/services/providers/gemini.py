"""
Gemini File Search adapter.

Each knowledge base owns one File Search store; each file is one document
inside it. Chat answers are generated with the store attached as a
file_search tool so the model retrieves from the indexed content.
"""

import io
import logging
import time
from dataclasses import dataclass
from typing import Any, Iterable, Iterator

from google import genai
from google.genai import errors, types

from kilo.config import get_settings
from kilo.models.enums import FileStatus, MessageRole
from kilo.utils.retry import with_retry

logger = logging.getLogger(__name__)

# Document states as reported by the provider, with or without the STATE_ prefix
_DOCUMENT_STATE_MAP = {
    "PENDING": FileStatus.PROCESSING,
    "PROCESSING": FileStatus.PROCESSING,
    "ACTIVE": FileStatus.READY,
    "READY": FileStatus.READY,
    "DONE": FileStatus.READY,
    "FAILED": FileStatus.FAILED,
    "ERROR": FileStatus.FAILED,
}


class DocumentStoreError(Exception):
    """The document store provider rejected or failed a request."""


@dataclass(frozen=True)
class UploadedDocument:
    document_id: str
    status: FileStatus
    operation_name: str | None = None


@dataclass(frozen=True)
class ChatTurn:
    role: MessageRole
    content: str


def _get_gemini_client() -> genai.Client:
    """Get Gemini client."""
    settings = get_settings()
    if not settings.gemini_api_key:
        raise DocumentStoreError("Gemini API key must be configured")
    return genai.Client(api_key=settings.gemini_api_key)


def map_document_state(state: Any) -> FileStatus | None:
    """Translate a provider document state into a FileStatus, or None if unknown."""
    if state is None:
        return None
    raw = str(getattr(state, "value", state)).upper()
    if raw.startswith("STATE_"):
        raw = raw[len("STATE_"):]
    return _DOCUMENT_STATE_MAP.get(raw)


def is_transient(error: Exception) -> bool:
    """Server errors and provider-side rate limiting are worth retrying."""
    if isinstance(error, errors.ServerError):
        return True
    return isinstance(error, errors.ClientError) and error.code == 429


def _call(func, *args: Any, **kwargs: Any):
    """Invoke a provider call, retrying transient failures."""
    try:
        return with_retry(
            func,
            *args,
            retry_if=is_transient,
            max_attempts=3,
            base_delay=1.0,
            **kwargs,
        )
    except errors.APIError as e:
        raise DocumentStoreError(f"{func.__name__} failed: {e}") from e


def create_store(display_name: str) -> str:
    """Create a File Search store and return its resource name."""
    client = _get_gemini_client()
    store = _call(
        client.file_search_stores.create,
        config={"display_name": display_name},
    )
    if not store.name:
        raise DocumentStoreError("Failed to create file search store: missing store name")

    logger.info(f"Created file search store {store.name} ({display_name})")
    return store.name


def delete_store(store_id: str) -> None:
    """Delete a store and every document in it."""
    client = _get_gemini_client()
    _call(client.file_search_stores.delete, name=store_id, config={"force": True})
    logger.info(f"Deleted file search store {store_id}")


def get_document_state(document_id: str) -> FileStatus | None:
    """Fetch a document's current ingestion state."""
    client = _get_gemini_client()
    document = _call(client.file_search_stores.documents.get, name=document_id)
    return map_document_state(document.state)


def delete_document(document_id: str) -> None:
    client = _get_gemini_client()
    _call(
        client.file_search_stores.documents.delete,
        name=document_id,
        config={"force": True},
    )
    logger.info(f"Deleted document {document_id}")


def upload_document(
    store_id: str,
    data: bytes,
    filename: str,
    mime_type: str,
) -> UploadedDocument:
    """
    Upload a file into a store and block until ingestion finishes.

    The upload returns a long-running operation which is polled at a fixed
    interval until it is done or the configured timeout elapses.

    Args:
        store_id: File Search store resource name
        data: Raw file bytes
        filename: Display name for the document
        mime_type: MIME type of the content; the SDK cannot infer one for raw bytes

    Returns:
        UploadedDocument with the document resource name and its status

    Raises:
        DocumentStoreError: On provider failure, failed ingestion or timeout
    """
    if not mime_type:
        raise DocumentStoreError(f"Cannot upload {filename} without a MIME type")

    settings = get_settings()
    client = _get_gemini_client()

    try:
        operation = _call(
            client.file_search_stores.upload_to_file_search_store,
            file=io.BytesIO(data),
            file_search_store_name=store_id,
            config={"display_name": filename, "mime_type": mime_type},
        )
    except ValueError as e:
        # Raised by the SDK while preparing the upload, before any request
        raise DocumentStoreError(f"Upload of {filename} rejected: {e}") from e

    deadline = time.monotonic() + settings.document_poll_timeout_seconds
    while not operation.done:
        if time.monotonic() >= deadline:
            raise DocumentStoreError(
                f"Timed out waiting for {filename} to be indexed "
                f"(operation {operation.name})"
            )
        logger.debug(f"Waiting for {filename} to be indexed...")
        time.sleep(settings.document_poll_interval_seconds)
        operation = _call(client.operations.get, operation)

    if operation.error:
        raise DocumentStoreError(f"File upload to store failed: {operation.error}")

    document_id = getattr(operation.response, "document_name", None) if operation.response else None
    if not document_id:
        raise DocumentStoreError("Upload finished without a document name")

    status = get_document_state(document_id) or FileStatus.READY
    logger.info(f"Indexed {filename} as {document_id} ({status.value})")
    return UploadedDocument(
        document_id=document_id,
        status=status,
        operation_name=operation.name,
    )


def _to_content(turn: ChatTurn) -> types.Content:
    role = "model" if turn.role == MessageRole.ASSISTANT else "user"
    return types.Content(role=role, parts=[types.Part(text=turn.content)])


def stream_answer(
    store_id: str,
    system_prompt: str,
    turns: Iterable[ChatTurn],
) -> Iterator[str]:
    """
    Stream an answer grounded on a File Search store.

    Yields:
        Text fragments as the model produces them

    Raises:
        DocumentStoreError: If the provider rejects the request
    """
    settings = get_settings()
    client = _get_gemini_client()

    config = types.GenerateContentConfig(
        system_instruction=system_prompt,
        temperature=settings.chat_temperature,
        max_output_tokens=settings.chat_max_output_tokens,
        tools=[
            types.Tool(
                file_search=types.FileSearch(file_search_store_names=[store_id])
            )
        ],
    )

    try:
        stream = client.models.generate_content_stream(
            model=settings.chat_model,
            contents=[_to_content(turn) for turn in turns],
            config=config,
        )
        for chunk in stream:
            if chunk.text:
                yield chunk.text
    except errors.APIError as e:
        raise DocumentStoreError(f"Chat generation failed: {e}") from e
