import os
import re
from unittest import mock

from django.core.files.uploadedfile import SimpleUploadedFile
from django.db import DatabaseError
from django.test import SimpleTestCase, override_settings
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from .models import Photo
from .storage import generate_filename
from .testing import TemporaryMediaMixin, image_bytes, make_user
from .uploads import UploadPolicy, accept_files, is_image_type


class PhotoUploadAPITests(TemporaryMediaMixin, APITestCase):
    """
    Test suite for POST /api/photos/upload
    """

    def setUp(self):
        super().setUp()
        self.upload_url = reverse('photo_upload')
        self.user = make_user()
        self.png = image_bytes()

    def _image(self, name='holiday.png', content=None, content_type='image/png'):
        return SimpleUploadedFile(name, self.png if content is None else content, content_type=content_type)

    def test_upload_single_photo(self):
        """Test uploading one image creates one index entry and one blob"""
        self.authenticate(self.user)

        response = self.client.post(self.upload_url, {'photo': self._image()}, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['message'], 'Photos uploaded successfully')
        self.assertEqual(len(response.data['photos']), 1)

        photo_data = response.data['photos'][0]
        self.assertEqual(photo_data['user'], self.user.id)
        self.assertEqual(photo_data['original_name'], 'holiday.png')
        self.assertEqual(photo_data['url'], f"/uploads/{photo_data['filename']}")
        self.assertEqual(photo_data['watermarked_url'], f"/api/photos/watermarked/{photo_data['filename']}")

        photo = Photo.objects.get(id=photo_data['id'])
        self.assertEqual(photo.user, self.user)
        with open(os.path.join(self.media_root, photo.filename), 'rb') as f:
            self.assertEqual(f.read(), self.png)

    def test_upload_filename_scheme(self):
        """Test stored names embed the owner and keep the extension"""
        self.authenticate(self.user)

        response = self.client.post(self.upload_url, {'photo': self._image('Beach.JPG', content_type='image/jpeg')}, format='multipart')

        filename = response.data['photos'][0]['filename']
        self.assertRegex(filename, rf'^{self.user.id}-\d+-\d+\.jpg$')

    def test_upload_multiple_photos(self):
        """Test a batch of images creates one record per file"""
        self.authenticate(self.user)
        files = [self._image(f'img{i}.png') for i in range(3)]

        response = self.client.post(self.upload_url, {'photo': files}, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(len(response.data['photos']), 3)
        filenames = {p['filename'] for p in response.data['photos']}
        self.assertEqual(len(filenames), 3)
        self.assertEqual(Photo.objects.filter(user=self.user).count(), 3)
        self.assertEqual(len(os.listdir(self.media_root)), 3)

    def test_upload_non_image_excluded_from_batch(self):
        """Test a non-image file is skipped without blocking the others"""
        self.authenticate(self.user)
        files = [
            self._image('good.png'),
            SimpleUploadedFile('notes.txt', b'plain text', content_type='text/plain'),
            self._image('also-good.png'),
        ]

        response = self.client.post(self.upload_url, {'photo': files}, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        names = sorted(p['original_name'] for p in response.data['photos'])
        self.assertEqual(names, ['also-good.png', 'good.png'])
        self.assertFalse(Photo.objects.filter(original_name='notes.txt').exists())

    @override_settings(PHOTO_UPLOAD_MAX_BYTES=1024)
    def test_upload_oversized_file_excluded(self):
        """Test a file above the size ceiling is skipped"""
        self.authenticate(self.user)
        files = [
            self._image('big.png', content=b'x' * 2048),
            self._image('small.png', content=b'x' * 512),
        ]

        response = self.client.post(self.upload_url, {'photo': files}, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual([p['original_name'] for p in response.data['photos']], ['small.png'])

    def test_upload_no_files(self):
        """Test an upload without files is rejected"""
        self.authenticate(self.user)

        response = self.client.post(self.upload_url, {}, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['detail'], 'No files uploaded')

    def test_upload_only_rejected_files(self):
        """Test a batch where every file is filtered out counts as no files"""
        self.authenticate(self.user)
        bad = SimpleUploadedFile('doc.pdf', b'%PDF-1.4', content_type='application/pdf')

        response = self.client.post(self.upload_url, {'photo': bad}, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Photo.objects.count(), 0)
        self.assertEqual(os.listdir(self.media_root), [])

    def test_upload_too_many_files(self):
        """Test more than ten files in one request is rejected"""
        self.authenticate(self.user)
        files = [self._image(f'img{i}.png') for i in range(11)]

        response = self.client.post(self.upload_url, {'photo': files}, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Photo.objects.count(), 0)

    def test_upload_wrong_field_name(self):
        """Test files under another field name are ignored"""
        self.authenticate(self.user)

        response = self.client.post(self.upload_url, {'file': self._image()}, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_upload_unauthenticated(self):
        """Test upload without a token"""
        response = self.client.post(self.upload_url, {'photo': self._image()}, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(Photo.objects.count(), 0)

    def test_upload_invalid_token(self):
        """Test upload with an invalid token"""
        self.client.credentials(HTTP_AUTHORIZATION='Bearer invalid.token.value')

        response = self.client.post(self.upload_url, {'photo': self._image()}, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_upload_index_failure_leaves_orphan(self):
        """Test an index write failure keeps the blob and is logged"""
        self.authenticate(self.user)

        with mock.patch.object(Photo.objects, 'create', side_effect=DatabaseError('index down')):
            with self.assertLogs('gallery.uploads', level='ERROR') as logs:
                response = self.client.post(self.upload_url, {'photo': self._image()}, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertNotIn('index down', str(response.data))
        self.assertEqual(len(os.listdir(self.media_root)), 1)
        self.assertTrue(any('Orphaned blob' in line for line in logs.output))

    def test_upload_partial_index_failure_keeps_successes(self):
        """Test a failing file does not undo files stored before it"""
        self.authenticate(self.user)
        real_create = Photo.objects.create
        calls = []

        def flaky_create(**kwargs):
            calls.append(kwargs)
            if len(calls) == 2:
                raise DatabaseError('index down')
            return real_create(**kwargs)

        files = [self._image(f'img{i}.png') for i in range(3)]
        with mock.patch.object(Photo.objects, 'create', side_effect=flaky_create):
            response = self.client.post(self.upload_url, {'photo': files}, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual([p['original_name'] for p in response.data['photos']], ['img0.png', 'img2.png'])
        self.assertEqual(Photo.objects.count(), 2)
        self.assertEqual(len(os.listdir(self.media_root)), 3)


class UploadPolicyTests(SimpleTestCase):
    """
    Test suite for the upload filtering helpers
    """

    def setUp(self):
        self.policy = UploadPolicy(
            destination=mock.Mock(),
            filename_generator=generate_filename,
            mime_predicate=is_image_type,
            max_bytes=100,
        )

    def test_is_image_type(self):
        """Test the MIME predicate only accepts image/* types"""
        self.assertTrue(is_image_type('image/png'))
        self.assertTrue(is_image_type('image/webp'))
        self.assertFalse(is_image_type('text/plain'))
        self.assertFalse(is_image_type(''))
        self.assertFalse(is_image_type(None))

    def test_accept_files_filters_per_file(self):
        """Test accept_files splits a batch file by file"""
        ok = SimpleUploadedFile('a.png', b'x' * 10, content_type='image/png')
        too_big = SimpleUploadedFile('b.png', b'x' * 101, content_type='image/png')
        wrong_type = SimpleUploadedFile('c.txt', b'x', content_type='text/plain')

        accepted, rejected = accept_files([ok, too_big, wrong_type], self.policy)

        self.assertEqual(accepted, [ok])
        self.assertEqual(rejected, [too_big, wrong_type])

    def test_accept_files_at_size_limit(self):
        """Test a file exactly at the ceiling is accepted"""
        exact = SimpleUploadedFile('a.png', b'x' * 100, content_type='image/png')

        accepted, _ = accept_files([exact], self.policy)

        self.assertEqual(accepted, [exact])

    def test_generate_filename_unique(self):
        """Test generated names do not repeat"""
        names = {generate_filename(7, 'photo.png') for _ in range(200)}

        self.assertEqual(len(names), 200)
        for name in names:
            self.assertTrue(re.match(r'^7-\d+-\d+\.png$', name))

    def test_generate_filename_drops_unsafe_extension(self):
        """Test odd extensions are not carried into stored names"""
        self.assertRegex(generate_filename(3, 'weird.p/ng'), r'^3-\d+-\d+$')
        self.assertRegex(generate_filename(3, 'noext'), r'^3-\d+-\d+$')
        self.assertRegex(generate_filename(3, 'x.tar gz'), r'^3-\d+-\d+$')

    @override_settings(PHOTO_UPLOAD_MAX_BYTES=50 * 1024 * 1024)
    def test_policy_from_settings(self):
        """Test the default policy mirrors the settings"""
        policy = UploadPolicy.from_settings()

        self.assertEqual(policy.max_bytes, 50 * 1024 * 1024)
        self.assertEqual(policy.max_files, 10)
        self.assertEqual(policy.field_name, 'photo')
