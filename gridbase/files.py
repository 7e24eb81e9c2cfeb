"""
File storage boundary.

Rows only keep FileReference records; the bytes live with an external provider reached
through FileStorageAdapter. FileAttachmentService ties the two together.
"""

import logging
import threading
from datetime import datetime
from typing import Any, BinaryIO, Callable, Dict, Optional, Protocol, Union, runtime_checkable

from pydantic import BaseModel, ConfigDict

from gridbase.adapters.base import FileReferenceStore
from gridbase.constants import ProcessingStatus
from gridbase.errors import GridbaseError, NotConfiguredError
from gridbase.schemas import CreateFileRefInput, FileReference

logger = logging.getLogger(__name__)

FileContent = Union[bytes, BinaryIO]


class UploadOptions(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    file_name: Optional[str] = None
    # Provider-specific processing, e.g. "invoice" for OCR
    processing_context: Optional[str] = None
    # Called with 0-100
    on_progress: Optional[Callable[[int], None]] = None
    cancel_event: Optional[threading.Event] = None
    metadata: Optional[Dict[str, str]] = None


class UploadedFile(BaseModel):
    id: str
    url: str
    original_name: str
    mime_type: str
    size_bytes: int
    metadata: Optional[Dict[str, Any]] = None


class FileMetadata(BaseModel):
    id: str
    mime_type: str
    size_bytes: int
    created_at: datetime
    updated_at: Optional[datetime] = None
    processing_status: ProcessingStatus = ProcessingStatus.PENDING
    custom: Optional[Dict[str, Any]] = None


class FileStorageAdapter(Protocol):
    def upload(self, file: FileContent, options: Optional[UploadOptions] = None) -> UploadedFile: ...

    def delete(self, file_id: str) -> None: ...

    def get_url(self, file_id: str) -> str: ...


@runtime_checkable
class SupportsMetadata(Protocol):
    """Optional provider capability."""

    def get_metadata(self, file_id: str) -> FileMetadata: ...


class NoopFileAdapter:
    """Stand-in used when no provider is configured. Every call fails loudly."""

    def upload(self, file: FileContent, options: Optional[UploadOptions] = None) -> UploadedFile:
        raise NotConfiguredError("File adapter not configured.")

    def delete(self, file_id: str) -> None:
        raise NotConfiguredError("File adapter not configured.")

    def get_url(self, file_id: str) -> str:
        raise NotConfiguredError("File adapter not configured.")

    def get_metadata(self, file_id: str) -> FileMetadata:
        raise NotConfiguredError("File adapter not configured.")


class FileAttachmentService:
    """Uploads files to storage and records them in a row's file ledger."""

    def __init__(self, adapter: FileReferenceStore, storage: Optional[FileStorageAdapter] = None):
        self.adapter = adapter
        self.storage = storage if storage is not None else NoopFileAdapter()

    def attach(
        self,
        row_id: str,
        column_id: str,
        file: FileContent,
        options: Optional[UploadOptions] = None,
    ) -> FileReference:
        uploaded = self.storage.upload(file, options)
        try:
            return self.adapter.add_file_reference(
                CreateFileRefInput(
                    row_id=row_id,
                    column_id=column_id,
                    file_id=uploaded.id,
                    file_url=uploaded.url,
                    original_name=uploaded.original_name,
                    mime_type=uploaded.mime_type,
                    size_bytes=uploaded.size_bytes,
                    metadata=uploaded.metadata,
                )
            )
        except GridbaseError:
            logger.warning("Could not record upload %s on row %s; deleting it", uploaded.id, row_id)
            self.storage.delete(uploaded.id)
            raise

    def detach(self, file_ref: FileReference) -> None:
        self.adapter.delete_file_reference(file_ref.id)
        self.storage.delete(file_ref.file_id)

    def get_url(self, file_ref: FileReference) -> str:
        return self.storage.get_url(file_ref.file_id)

    def get_metadata(self, file_ref: FileReference) -> Optional[FileMetadata]:
        if not isinstance(self.storage, SupportsMetadata):
            return None
        return self.storage.get_metadata(file_ref.file_id)
