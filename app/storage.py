"""Contact photo storage.

Photos are kept on the local filesystem under ``UPLOAD_DIR`` and served
from ``/uploads``, or uploaded to Cloudinary when ``CLOUDINARY_URL`` is set.
The reference returned by ``save`` is what gets stored on the contact.
"""

import io
import logging
import random
import re
import time
import uuid
from dataclasses import dataclass
from pathlib import Path

import cloudinary
import cloudinary.uploader
from fastapi import UploadFile

from .core import get_settings
from .errors import ServerError, ValidationError

logger = logging.getLogger("contacts_api.storage")

URL_PREFIX = "/uploads"
CONTACTS_SUBDIR = "contacts"
CLOUDINARY_FOLDER = "contacts_photos"
IMAGE_TYPE = re.compile(r"^image/(jpg|jpeg|png|gif|webp)$", re.IGNORECASE)
EXTENSIONS = {"jpg": ".jpg", "jpeg": ".jpg", "png": ".png", "gif": ".gif", "webp": ".webp"}


@dataclass
class PhotoUpload:
    """A validated image waiting to be stored."""

    content: bytes
    filename: str
    content_type: str

    @property
    def extension(self) -> str:
        return EXTENSIONS[self.content_type.split("/", 1)[1].lower()]


def read_upload(upload: UploadFile | None, max_size: int | None = None) -> PhotoUpload | None:
    """
    Validate an uploaded file and read it into memory.

    Args:
        upload (UploadFile | None): Multipart file part, possibly empty.
        max_size (int | None): Size limit in bytes, defaults to ``MAX_PHOTO_SIZE``.

    Raises:
        ValidationError: If the file is not an image or is too large.

    Returns:
        PhotoUpload | None: ``None`` when no file was sent.
    """
    if upload is None or not upload.filename:
        return None
    if max_size is None:
        max_size = get_settings().MAX_PHOTO_SIZE

    content_type = upload.content_type or ""
    if not IMAGE_TYPE.match(content_type):
        raise ValidationError("Only image files are allowed")

    content = upload.file.read(max_size + 1)
    if len(content) > max_size:
        raise ValidationError(
            f"Photo exceeds the maximum size of {max_size // (1024 * 1024)}MB"
        )
    return PhotoUpload(content=content, filename=upload.filename, content_type=content_type)


class LocalPhotoStorage:
    """Stores photos as files below ``root/contacts``."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _new_name(self, photo: PhotoUpload) -> str:
        suffix = f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}"
        return f"contact-{suffix}{photo.extension}"

    def save(self, photo: PhotoUpload) -> str:
        directory = self.root / CONTACTS_SUBDIR
        directory.mkdir(parents=True, exist_ok=True)
        name = self._new_name(photo)
        (directory / name).write_bytes(photo.content)
        return f"{URL_PREFIX}/{CONTACTS_SUBDIR}/{name}"

    def path_for(self, reference: str) -> Path | None:
        """Map a stored reference back to a file inside ``root``."""
        if not reference.startswith(URL_PREFIX + "/"):
            return None
        root = self.root.resolve()
        path = (root / reference[len(URL_PREFIX) + 1:]).resolve()
        if root not in path.parents:
            return None
        return path

    def delete(self, reference: str) -> None:
        path = self.path_for(reference)
        if path is None:
            logger.warning("Refusing to delete photo outside upload dir: %s", reference)
            return
        path.unlink(missing_ok=True)


class CloudinaryPhotoStorage:
    """Stores photos in a Cloudinary folder and references them by URL."""

    public_id_pattern = re.compile(rf"/({CLOUDINARY_FOLDER}/[^/.]+)(\.\w+)?$")

    def __init__(self, cloudinary_url: str):
        cloudinary.config(cloudinary_url=cloudinary_url)

    def save(self, photo: PhotoUpload) -> str:
        result = cloudinary.uploader.upload(
            io.BytesIO(photo.content),
            folder=CLOUDINARY_FOLDER,
            public_id=f"contact-{uuid.uuid4().hex}",
            resource_type="image",
        )
        url = result.get("secure_url")
        if not url:
            raise ServerError("Failed to upload photo")
        return url

    def delete(self, reference: str) -> None:
        match = self.public_id_pattern.search(reference)
        if match is None:
            logger.warning("Not a Cloudinary photo reference: %s", reference)
            return
        cloudinary.uploader.destroy(match.group(1), resource_type="image")


def get_photo_storage():
    """
    Return the configured photo storage backend.

    Used as a FastAPI dependency so tests can swap the backend.
    """
    settings = get_settings()
    if settings.CLOUDINARY_URL:
        return CloudinaryPhotoStorage(settings.CLOUDINARY_URL)
    return LocalPhotoStorage(settings.UPLOAD_DIR)


def discard_photo(storage, reference: str | None) -> None:
    """Delete a stored photo; failures are logged, the caller carries on."""
    if not reference:
        return
    try:
        storage.delete(reference)
    except Exception:
        logger.warning("Failed to delete photo %s", reference, exc_info=True)
