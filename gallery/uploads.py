"""
Upload pipeline: filter a multipart batch, store each accepted image and
index it for its owner.
"""
import logging
from dataclasses import dataclass
from typing import Callable

from django.conf import settings
from django.core.files.storage import Storage, default_storage
from django.db import DatabaseError
from rest_framework.exceptions import ValidationError

from .exceptions import StorageError
from .models import Photo
from .storage import generate_filename

logger = logging.getLogger(__name__)


def is_image_type(content_type):
    return bool(content_type) and content_type.startswith('image/')


@dataclass(frozen=True)
class UploadPolicy:
    destination: Storage
    filename_generator: Callable[[int, str], str]
    mime_predicate: Callable[[str], bool]
    max_bytes: int
    max_files: int = 10
    field_name: str = 'photo'

    @classmethod
    def from_settings(cls):
        return cls(
            destination=default_storage,
            filename_generator=generate_filename,
            mime_predicate=is_image_type,
            max_bytes=settings.PHOTO_UPLOAD_MAX_BYTES,
            max_files=settings.PHOTO_UPLOAD_MAX_FILES,
            field_name=settings.PHOTO_UPLOAD_FIELD,
        )


def collect_files(request, policy):
    """Files posted under the policy's field, capped at `max_files`."""
    files = request.FILES.getlist(policy.field_name)
    if not files:
        raise ValidationError({'detail': 'No files uploaded'})
    if len(files) > policy.max_files:
        raise ValidationError({'detail': f'At most {policy.max_files} files may be uploaded at once'})
    return files


def accept_files(files, policy):
    """
    Split `files` into (accepted, rejected). Rejection is per file; one bad
    file never blocks the rest of the batch.
    """
    accepted, rejected = [], []
    for f in files:
        if not policy.mime_predicate(f.content_type):
            logger.info("Rejected %s: content type %s is not an image", f.name, f.content_type)
            rejected.append(f)
        elif f.size > policy.max_bytes:
            logger.info("Rejected %s: %d bytes exceeds limit of %d", f.name, f.size, policy.max_bytes)
            rejected.append(f)
        else:
            accepted.append(f)
    return accepted, rejected


def store_uploads(owner_id, files, policy=None):
    """
    Store and index every acceptable file in `files` for `owner_id`.

    Files are handled one at a time and earlier successes are kept whatever
    happens to later ones. A blob whose index row cannot be written is left
    in place and logged as orphaned.
    """
    policy = policy or UploadPolicy.from_settings()
    accepted, _ = accept_files(files, policy)
    if not accepted:
        raise ValidationError({'detail': 'No files uploaded'})

    photos = []
    for f in accepted:
        name = policy.filename_generator(owner_id, f.name)
        try:
            name = policy.destination.save(name, f)
        except OSError as e:
            logger.error("Could not store upload %s for user %s: %s", f.name, owner_id, e)
            continue

        try:
            photo = Photo.objects.create(user_id=owner_id, filename=name, original_name=f.name or '')
        except DatabaseError as e:
            logger.error("Orphaned blob %s: index write failed for user %s: %s", name, owner_id, e)
            continue

        logger.info("Stored %s as %s for user %s", f.name, name, owner_id)
        photos.append(photo)

    if not photos:
        raise StorageError('Server error during photo upload')
    return photos
