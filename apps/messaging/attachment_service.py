"""
Attachment handling for order messages.
Files go through default_storage, which is S3 or local disk depending on
USE_S3_STORAGE (see config/storage.py).
"""
import logging
import os
import uuid
from typing import Dict, List, Optional

from django.core.files.storage import default_storage
from django.core.files.uploadedfile import UploadedFile

from .models import Message, MessageAttachment

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {
    'image/jpeg',
    'image/png',
    'image/gif',
    'image/webp',
    'application/pdf',
    'application/msword',
    'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
    'text/plain',
    'text/csv',
}

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MB
MAX_ATTACHMENTS = 5

GENERAL_ERROR_KEY = "_general"


def validate_attachments(files: List[UploadedFile]) -> Dict[str, List[str]]:
    """
    Check every file and return errors keyed by original file name.
    Too many files is reported under the "_general" key.
    """
    errors: Dict[str, List[str]] = {}
    if len(files) > MAX_ATTACHMENTS:
        errors[GENERAL_ERROR_KEY] = [f"Maximum {MAX_ATTACHMENTS} attachments allowed per message"]

    for file in files:
        problems = []
        if not file.size:
            problems.append("File is empty")
        elif file.size > MAX_FILE_SIZE:
            problems.append("File size exceeds 10MB limit")
        if file.content_type not in ALLOWED_CONTENT_TYPES:
            problems.append("File type not allowed")
        if problems:
            errors.setdefault(file.name, []).extend(problems)
    return errors


def store_attachment(message: Message, file: UploadedFile, uploaded_by, stored_paths: Optional[List[str]] = None) -> MessageAttachment:
    """
    Save one file under the order's folder with a collision-free name.

    The saved path is appended to stored_paths before the row is written,
    so the caller can remove it with discard_files if its transaction fails.
    """
    extension = os.path.splitext(file.name)[1].lower()
    file_name = f"{uuid.uuid4()}{extension}"
    path = default_storage.save(f"messages/{message.order_id}/{file_name}", file)
    if stored_paths is not None:
        stored_paths.append(path)

    attachment = MessageAttachment.objects.create(
        message=message,
        file_name=file_name,
        original_file_name=file.name[:255],
        file_size=file.size,
        content_type=file.content_type,
        storage_path=path,
        file_url=default_storage.url(path),
        uploaded_by=uploaded_by,
    )
    logger.info(f"Stored attachment {attachment.id} for message {message.id} at {path}")
    return attachment


def open_attachment(attachment: MessageAttachment):
    return default_storage.open(attachment.storage_path, 'rb')


def discard_files(paths: List[str]) -> None:
    """Remove stored files whose attachment rows were rolled back."""
    for path in paths:
        try:
            default_storage.delete(path)
        except OSError:
            logger.exception(f"Could not remove orphaned attachment file {path}")
        else:
            logger.warning(f"Removed orphaned attachment file {path}")
