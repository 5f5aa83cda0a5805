"""
Asset store access on top of Django's default storage.

Blobs live flat in MEDIA_ROOT under server generated names.
"""
import os
import random
import re
import time

from django.core.exceptions import SuspiciousFileOperation
from django.core.files.storage import default_storage
from rest_framework.exceptions import NotFound

_EXTENSION_RE = re.compile(r'^\.[A-Za-z0-9]{1,10}$')


def generate_filename(owner_id, original_name):
    """
    `{owner}-{epoch ms}-{random}{.ext}`. The extension is kept only when it is
    plain alphanumeric.
    """
    unique_suffix = f"{int(time.time() * 1000)}-{random.randint(0, 10 ** 9)}"
    ext = os.path.splitext(original_name or '')[1]
    if not _EXTENSION_RE.match(ext):
        ext = ''
    return f"{owner_id}-{unique_suffix}{ext.lower()}"


def is_safe_name(filename):
    if not filename or filename.startswith('.'):
        return False
    return not any(c in filename for c in ('/', '\\', '\x00'))


def resolve_asset(filename, storage=None):
    """
    Map a caller supplied name to an absolute path inside the store.
    Anything that is not a plain stored filename is NotFound.
    """
    storage = storage or default_storage
    if not is_safe_name(filename):
        raise NotFound('Image not found')
    try:
        path = storage.path(filename)
    except SuspiciousFileOperation:
        raise NotFound('Image not found')
    if not storage.exists(filename):
        raise NotFound('Image not found')
    return path
