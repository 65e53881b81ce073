import os
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import magic
from dotenv import load_dotenv

from carelink.core.errors import InvalidAttachment, StorageError

load_dotenv()

logger = logging.getLogger(__name__)

# ==================== CONFIG ====================
STORAGE_DIR = Path(os.getenv("UPLOAD_DIR", "uploads"))
MEDIA_URL = os.getenv("MEDIA_URL", "/uploads").rstrip("/")
BUCKET = "medical-records"

MAX_ATTACHMENT_SIZE = 10 * 1024 * 1024  # 10 MB

# Bytes read for MIME detection
SNIFF_SIZE = 2048

WORD_DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

# Detected MIME types accepted for each extension
ALLOWED_MIME_TYPES = {
    ".jpg": ["image/jpeg"],
    ".jpeg": ["image/jpeg"],
    ".png": ["image/png"],
    ".gif": ["image/gif"],
    ".webp": ["image/webp"],
    ".pdf": ["application/pdf"],
    ".doc": ["application/msword", "application/x-ole-storage", "application/CDFV2"],
    ".docx": [WORD_DOCX, "application/zip"],
    ".txt": ["text/plain"],
}

ALLOWED_EXTENSIONS = set(ALLOWED_MIME_TYPES)

FILE_SIGNATURES = {
    ".jpg": [b"\xFF\xD8\xFF"],
    ".jpeg": [b"\xFF\xD8\xFF"],
    ".png": [b"\x89\x50\x4E\x47\x0D\x0A\x1A\x0A"],
    ".pdf": [b"%PDF"],
    ".gif": [b"GIF87a", b"GIF89a"],
    ".docx": [b"PK\x03\x04"],
    ".doc": [b"\xD0\xCF\x11\xE0\xA1\xB1\x1A\xE1"],
}


# ==================== HELPER FUNCTIONS ====================

def is_valid_signature(content: bytes, extension: str) -> bool:
    """Check the leading bytes against the extension; types without a signature pass."""
    signatures = FILE_SIGNATURES.get(extension)
    if not signatures:
        return True
    return any(content.startswith(sig) for sig in signatures)


def detect_mime_type(content: bytes) -> str:
    mime = magic.Magic(mime=True)
    return mime.from_buffer(content[:SNIFF_SIZE])


def validate_attachment(filename: Optional[str], content: bytes) -> str:
    """
    Validate an attachment before upload.

    Checks the filename, size, extension, the MIME type detected from the
    content and the leading signature bytes. Returns the bare filename or
    raises InvalidAttachment listing every problem found.
    """
    errors = []

    if not filename:
        raise InvalidAttachment(["Missing filename"])

    if "/" in filename or "\\" in filename or ".." in filename:
        errors.append("Invalid filename")
    name = Path(filename).name

    if not content:
        errors.append("File is empty")
    elif len(content) > MAX_ATTACHMENT_SIZE:
        errors.append(
            f"File size {len(content)/1024/1024:.1f}MB exceeds maximum "
            f"{MAX_ATTACHMENT_SIZE/1024/1024:.1f}MB"
        )

    extension = Path(name).suffix.lower()
    if extension not in ALLOWED_EXTENSIONS:
        errors.append(f"Extension {extension or '(none)'} not allowed")
    elif content:
        detected_mime = detect_mime_type(content)
        if detected_mime not in ALLOWED_MIME_TYPES[extension]:
            errors.append(f"MIME type {detected_mime} not allowed for {extension}")
        if not is_valid_signature(content, extension):
            errors.append(f"File signature doesn't match extension {extension}")

    if errors:
        raise InvalidAttachment(errors)
    return name


def build_storage_path(user_id: str, filename: str, now: Optional[datetime] = None) -> str:
    """Object key for an upload: "<user_id>/<epoch millis>_<filename>"."""
    now = now or datetime.now(timezone.utc)
    millis = int(now.timestamp() * 1000)
    return f"{user_id}/{millis}_{filename}"


# ==================== STORAGE ====================

class LocalStorage:
    """
    Filesystem object store laid out as <base_dir>/<bucket>/<path>.

    Uploads never overwrite an existing object.
    """

    def __init__(self, base_dir=STORAGE_DIR, bucket: str = BUCKET, media_url: str = MEDIA_URL):
        self.base_dir = Path(base_dir)
        self.bucket = bucket
        self.media_url = media_url.rstrip("/")

    def _resolve(self, path: str) -> Path:
        root = (self.base_dir / self.bucket).resolve()
        target = (root / path).resolve()
        if root != target and root not in target.parents:
            raise StorageError(f"Path escapes bucket: {path}")
        return target

    def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        target = self._resolve(path)
        if target.exists():
            raise StorageError(f"Object already exists: {path}")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "wb") as f:
                f.write(data)
            if os.name != "nt":
                os.chmod(target, 0o644)
        except OSError as e:
            logger.error(f"File save error: {str(e)}")
            raise StorageError(f"Upload failed: {str(e)}")

        logger.info(f"Stored {len(data)} bytes at {self.bucket}/{path} ({content_type or 'unknown type'})")
        return path

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def delete(self, path: str) -> bool:
        target = self._resolve(path)
        if not target.is_file():
            return False
        target.unlink()
        return True

    def get_public_url(self, path: Optional[str]) -> Optional[str]:
        if not path:
            return None
        return f"{self.media_url}/{self.bucket}/{path}"


storage = LocalStorage()


def get_storage() -> LocalStorage:
    return storage
