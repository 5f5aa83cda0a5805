import logging

from django.core.files.storage import default_storage
from rest_framework.exceptions import NotFound, PermissionDenied

from .exceptions import StorageError
from .models import Photo

logger = logging.getLogger(__name__)


def can_mutate(photo, requester_id):
    """Only the owner of a photo may change or remove it."""
    return photo.user_id == requester_id


def owned_photos(requester_id):
    return Photo.objects.filter(user_id=requester_id)


def delete_photo(photo_id, identity, storage=None):
    """
    Remove a photo and its blob on behalf of `identity`.

    The blob goes first. If removing it fails the row is kept, so what can be
    left behind is an index row whose file may already be gone; deleting
    again then completes. A blob that is already missing is not an error.
    """
    storage = storage or default_storage
    try:
        photo = Photo.objects.get(pk=photo_id)
    except Photo.DoesNotExist:
        raise NotFound('Photo not found')

    if not can_mutate(photo, identity.user_id):
        logger.warning("User %s tried to delete photo %s owned by %s", identity.user_id, photo.pk, photo.user_id)
        raise PermissionDenied('Not authorized to delete this photo')

    try:
        storage.delete(photo.filename)
    except OSError as e:
        logger.error("Failed to delete stored file %s: %s", photo.filename, e)
        raise StorageError('Error deleting photo')

    photo.delete()
    logger.info("Deleted photo %s (%s) for user %s", photo_id, photo.filename, identity.user_id)
