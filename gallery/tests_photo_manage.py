import os
from datetime import timedelta
from unittest import mock

from django.core.files.base import ContentFile
from django.core.files.storage import default_storage
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.exceptions import PermissionDenied
from rest_framework.test import APITestCase
from rest_framework_simplejwt.tokens import AccessToken

from .authentication import Identity
from .models import Photo
from .permissions import can_mutate, delete_photo
from .testing import TemporaryMediaMixin, image_bytes, make_user


class PhotoFixtureMixin(TemporaryMediaMixin):

    def setUp(self):
        super().setUp()
        self.owner = make_user(email='owner@example.com')
        self.other = make_user(email='other@example.com')

    def store_photo(self, user, name, uploaded=None):
        filename = default_storage.save(f'{user.id}-{name}', ContentFile(image_bytes()))
        return Photo.objects.create(
            user=user,
            filename=filename,
            original_name=name,
            upload_date=uploaded or timezone.now(),
        )


class PhotoListAPITests(PhotoFixtureMixin, APITestCase):
    """
    Test suite for GET /api/photos
    """

    def setUp(self):
        super().setUp()
        self.list_url = reverse('photo_list')
        now = timezone.now()
        self.oldest = self.store_photo(self.owner, 'a.png', now - timedelta(days=2))
        self.newest = self.store_photo(self.owner, 'b.png', now)
        self.middle = self.store_photo(self.owner, 'c.png', now - timedelta(days=1))
        self.foreign = self.store_photo(self.other, 'd.png', now)

    def test_list_newest_first(self):
        """Test the caller's photos come back newest first"""
        self.authenticate(self.owner)

        response = self.client.get(self.list_url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        ids = [p['id'] for p in response.data['photos']]
        self.assertEqual(ids, [self.newest.id, self.middle.id, self.oldest.id])

    def test_list_scoped_to_caller(self):
        """Test another user's photos never appear"""
        self.authenticate(self.other)

        response = self.client.get(self.list_url)

        self.assertEqual([p['id'] for p in response.data['photos']], [self.foreign.id])
        for photo in response.data['photos']:
            self.assertEqual(photo['user'], self.other.id)

    def test_list_empty(self):
        """Test a user without uploads gets an empty list"""
        self.authenticate(make_user(email='new@example.com'))

        response = self.client.get(self.list_url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['photos'], [])

    def test_list_unauthenticated(self):
        """Test listing without a token"""
        response = self.client.get(self.list_url)

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class PhotoDeleteAPITests(PhotoFixtureMixin, APITestCase):
    """
    Test suite for DELETE /api/photos/<id>
    """

    def setUp(self):
        super().setUp()
        self.photo = self.store_photo(self.owner, 'keep.png')
        self.delete_url = reverse('photo_delete', kwargs={'photo_id': self.photo.id})
        self.blob_path = os.path.join(self.media_root, self.photo.filename)

    def test_delete_success(self):
        """Test the owner removes both the blob and the index entry"""
        self.authenticate(self.owner)

        response = self.client.delete(self.delete_url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['message'], 'Photo deleted successfully')
        self.assertFalse(Photo.objects.filter(id=self.photo.id).exists())
        self.assertFalse(os.path.exists(self.blob_path))

    def test_delete_missing_blob(self):
        """Test deleting a photo whose file is already gone still succeeds"""
        os.remove(self.blob_path)
        self.authenticate(self.owner)

        response = self.client.delete(self.delete_url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(Photo.objects.filter(id=self.photo.id).exists())

    def test_delete_not_owner(self):
        """Test another user cannot delete the photo"""
        self.authenticate(self.other)

        response = self.client.delete(self.delete_url)

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['detail'], 'Not authorized to delete this photo')
        self.assertTrue(Photo.objects.filter(id=self.photo.id).exists())
        self.assertTrue(os.path.exists(self.blob_path))

    def test_delete_unknown_id(self):
        """Test deleting an id that does not exist"""
        self.authenticate(self.owner)

        response = self.client.delete(reverse('photo_delete', kwargs={'photo_id': self.photo.id + 1000}))

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_delete_unauthenticated(self):
        """Test deleting without a token"""
        response = self.client.delete(self.delete_url)

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertTrue(Photo.objects.filter(id=self.photo.id).exists())

    def test_delete_storage_failure_keeps_index(self):
        """Test a failed blob removal leaves the index entry in place"""
        self.authenticate(self.owner)
        broken = mock.Mock()
        broken.delete.side_effect = PermissionError('read-only filesystem')

        with mock.patch('gallery.permissions.default_storage', broken):
            response = self.client.delete(self.delete_url)

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertNotIn('read-only', str(response.data))
        self.assertTrue(Photo.objects.filter(id=self.photo.id).exists())

    def test_delete_with_string_user_id_claim(self):
        """Test the owner can delete when the token carries the id as a string"""
        token = AccessToken.for_user(self.owner)
        token['user_id'] = str(self.owner.id)
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')

        response = self.client.delete(self.delete_url)

        self.assertEqual(response.status_code, 200)
        self.assertFalse(Photo.objects.filter(id=self.photo.id).exists())

    def test_delete_twice(self):
        """Test a second delete of the same photo is a 404"""
        self.authenticate(self.owner)
        self.client.delete(self.delete_url)

        response = self.client.delete(self.delete_url)

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class OwnershipGateTests(PhotoFixtureMixin, APITestCase):
    """
    Test suite for the ownership checks used by delete
    """

    def test_can_mutate(self):
        """Test only the owner may mutate a photo"""
        photo = self.store_photo(self.owner, 'x.png')

        self.assertTrue(can_mutate(photo, self.owner.id))
        self.assertFalse(can_mutate(photo, self.other.id))

    def test_delete_photo_rejects_other_user(self):
        """Test delete_photo refuses a non-owner whatever their token"""
        photo = self.store_photo(self.owner, 'x.png')

        with self.assertRaises(PermissionDenied):
            delete_photo(photo.id, Identity(user_id=self.other.id, email=self.other.email))
        self.assertTrue(Photo.objects.filter(id=photo.id).exists())
