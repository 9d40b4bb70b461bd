"""
Staging of uploaded lead files on local disk and the inspect preview.
"""
from dataclasses import dataclass, field
import logging
import os
import uuid
from typing import BinaryIO, Dict, List, Optional

from app.domain.imports.processors.tabular_reader import (
    detect_file_type,
    normalize_extension,
    open_tabular_source,
)
from app.domain.uploads.sessions import remove_staged_file

logger = logging.getLogger(__name__)

COPY_BUFFER_BYTES = 1024 * 1024


class UploadTooLargeError(ValueError):
    def __init__(self, file_name: str, limit_bytes: int):
        self.file_name = file_name
        self.limit_bytes = limit_bytes
        limit_mb = limit_bytes // (1024 * 1024)
        super().__init__(f"{file_name} is too large. Maximum allowed upload size is {limit_mb}MB.")


@dataclass
class StagedUpload:
    path: str
    original_name: str
    extension: str
    size: int


@dataclass
class Inspection:
    file_type: str
    sheet_names: List[str]
    previews: Dict[str, List[Dict[str, str]]] = field(default_factory=dict)
    preview_available: bool = True
    preview_disabled_reason: Optional[str] = None


def stage_upload(stream: BinaryIO, original_name: str, staging_dir: str, max_bytes: int) -> StagedUpload:
    """
    Copy an upload stream into ``staging_dir`` under a unique name.

    Raises:
        UnsupportedFileTypeError: when the extension is not a lead format.
        UploadTooLargeError: when the stream exceeds ``max_bytes``; nothing is left on disk.
    """
    extension = normalize_extension(original_name)
    detect_file_type(extension)

    os.makedirs(staging_dir, exist_ok=True)
    path = os.path.abspath(os.path.join(staging_dir, f"{uuid.uuid4().hex}{extension}"))
    size = 0
    try:
        with open(path, "wb") as target:
            while True:
                block = stream.read(COPY_BUFFER_BYTES)
                if not block:
                    break
                size += len(block)
                if size > max_bytes:
                    raise UploadTooLargeError(original_name, max_bytes)
                target.write(block)
    except Exception:
        remove_staged_file(path)
        raise

    logger.info("Staged %s (%d bytes) at %s", original_name, size, path)
    return StagedUpload(path=path, original_name=original_name, extension=extension, size=size)


def inspect_staged_upload(staged: StagedUpload, preview_size_limit_bytes: int, row_limit: int) -> Inspection:
    """
    Read sheet names and, for files under the preview limit, the first rows of each sheet.

    Raises:
        SourceReadError: when the file cannot be opened.
    """
    file_type = detect_file_type(staged.extension)
    with open_tabular_source(staged.path, staged.extension) as source:
        inspection = Inspection(file_type=file_type, sheet_names=source.sheet_names())
        if staged.size > preview_size_limit_bytes:
            limit_mb = preview_size_limit_bytes // (1024 * 1024)
            kind = "CSV files" if file_type == "csv" else "workbooks"
            inspection.preview_available = False
            inspection.preview_disabled_reason = f"Preview disabled for large {kind} (>{limit_mb} MB)."
        else:
            inspection.previews = source.preview(row_limit)
    return inspection
