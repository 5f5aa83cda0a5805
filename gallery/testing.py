"""
Shared fixtures for the gallery test modules.
"""
import shutil
import tempfile
from io import BytesIO

from django.test import override_settings
from PIL import Image

from .authentication import issue_token
from .models import User

PASSWORD = 'Sn4pVault!2024'


def image_bytes(size=(64, 48), color=(200, 30, 30), fmt='PNG', mode='RGB'):
    buffer = BytesIO()
    Image.new(mode, size, color).save(buffer, format=fmt)
    return buffer.getvalue()


def make_user(email='owner@example.com', **extra):
    fields = {
        'first_name': 'Test',
        'last_name': 'User',
        'phone': '555-0100',
        'company': 'Gallery Co',
    }
    fields.update(extra)
    return User.objects.create_user(email=email, password=PASSWORD, **fields)


class TemporaryMediaMixin:
    """
    Points MEDIA_ROOT at a throwaway directory for the duration of a test
    """

    def setUp(self):
        super().setUp()
        self.media_root = tempfile.mkdtemp()
        override = override_settings(MEDIA_ROOT=self.media_root)
        override.enable()
        self.addCleanup(override.disable)
        self.addCleanup(shutil.rmtree, self.media_root, ignore_errors=True)

    def authenticate(self, user):
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {issue_token(user)}')
