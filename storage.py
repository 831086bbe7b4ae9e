import logging
import os
import secrets
import time
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError
from werkzeug.utils import secure_filename

from errors import ExternalServiceError, NotFound, ValidationError

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 10 * 1024 * 1024

ALLOWED_CONTENT_TYPES = {
    'image/jpeg',
    'image/png',
    'image/gif',
    'image/webp',
    'application/pdf',
    'text/plain',
    'application/msword',
    'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
}


@dataclass
class StoredBlob:
    filename: str
    original_name: str
    path: str
    mimetype: str
    size: int


def generate_filename(original_name):
    """Server-side name: millisecond timestamp, random suffix, original extension."""
    _, ext = os.path.splitext(secure_filename(original_name or ''))
    return f"{int(time.time() * 1000)}-{secrets.token_hex(8)}{ext.lower()}"


def is_safe_filename(filename):
    return bool(filename) and '..' not in filename and '/' not in filename and '\\' not in filename


class LocalBlobStore:
    """Keeps uploaded proof files in a directory on local disk."""

    def __init__(self, upload_folder, max_size=MAX_UPLOAD_BYTES, allowed_types=None):
        self.upload_folder = os.path.abspath(upload_folder)
        self.max_size = max_size
        self.allowed_types = allowed_types or ALLOWED_CONTENT_TYPES

    def save(self, upload):
        mimetype = (upload.mimetype or '').lower()
        if mimetype not in self.allowed_types:
            raise ValidationError(f"File type {mimetype or 'unknown'} is not allowed")

        filename = generate_filename(upload.filename)
        filepath = os.path.join(self.upload_folder, filename)
        try:
            os.makedirs(self.upload_folder, exist_ok=True)
            upload.save(filepath)
            size = os.path.getsize(filepath)
        except OSError as e:
            logger.error("Error storing upload %s: %s", upload.filename, e)
            self.delete(filepath)
            raise ExternalServiceError('Failed to store proof file') from e

        if size > self.max_size:
            self.delete(filepath)
            raise ValidationError(f"File exceeds the {self.max_size // (1024 * 1024)} MB limit")

        if mimetype.startswith('image/'):
            try:
                with Image.open(filepath) as img:
                    img.verify()
            except (UnidentifiedImageError, OSError, SyntaxError) as e:
                logger.warning("Rejected unreadable image %s: %s", upload.filename, e)
                self.delete(filepath)
                raise ValidationError('Uploaded image could not be read') from e

        logger.info("Stored proof file %s (%d bytes)", filename, size)
        return StoredBlob(
            filename=filename,
            original_name=upload.filename,
            path=filepath,
            mimetype=mimetype,
            size=size,
        )

    def delete(self, path):
        try:
            os.remove(path)
        except FileNotFoundError:
            pass

    def resolve(self, filename):
        if not is_safe_filename(filename):
            raise ValidationError('Invalid filename')
        path = os.path.join(self.upload_folder, filename)
        if not os.path.isfile(path):
            raise NotFound('File not found')
        return path
