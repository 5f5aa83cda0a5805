import os
from concurrent.futures import ThreadPoolExecutor
from io import BytesIO

from django.test import SimpleTestCase, override_settings
from django.urls import reverse
from PIL import Image
from rest_framework import status
from rest_framework.exceptions import NotFound
from rest_framework.test import APITestCase

from .exceptions import RenderError
from .storage import resolve_asset
from .testing import TemporaryMediaMixin, image_bytes, make_user
from .watermark import composite, render_watermarked, watermark_geometry

BLACK = (0, 0, 0)
WHITE = (255, 255, 255, 255)


class WatermarkGeometryTests(SimpleTestCase):
    """
    Test suite for logo sizing and placement
    """

    def test_square_source(self):
        """Test a 1000x1000 source gets a 200px logo at (790, 790)"""
        placement = watermark_geometry(1000, 1000, 400, 400)

        self.assertEqual(placement.width, 200)
        self.assertEqual(placement.height, 200)
        self.assertEqual((placement.left, placement.top), (790, 790))

    def test_aspect_ratio_preserved(self):
        """Test the logo height follows the logo's own aspect ratio"""
        placement = watermark_geometry(1000, 600, 240, 120)

        self.assertEqual((placement.width, placement.height), (200, 100))

    def test_vertical_offset_uses_logo_width(self):
        """Test the top offset comes from the scaled width, not the height"""
        placement = watermark_geometry(1000, 600, 240, 120)

        self.assertEqual(placement.left, 790)
        self.assertEqual(placement.top, 600 - 200 - 10)
        # a height based offset would have been flush with the bottom margin
        self.assertNotEqual(placement.top, 600 - placement.height - 10)

    def test_rounds_to_nearest(self):
        """Test the scaled width rounds to the nearest pixel"""
        placement = watermark_geometry(1003, 1000, 100, 100)

        self.assertEqual(placement.width, 201)
        self.assertEqual(placement.left, 1003 - 201 - 10)

    def test_logo_height_rounds_half_up(self):
        """Test a logo height ending in .5 rounds upwards"""
        placement = watermark_geometry(1010, 1000, 100, 25)

        self.assertEqual(placement.width, 202)
        self.assertEqual(placement.height, 51)

    def test_tiny_source(self):
        """Test a very small source still yields a usable logo size"""
        placement = watermark_geometry(2, 2, 100, 50)

        self.assertGreaterEqual(placement.width, 1)
        self.assertGreaterEqual(placement.height, 1)


class WatermarkMediaMixin(TemporaryMediaMixin):

    def setUp(self):
        super().setUp()
        self.logo_path = os.path.join(self.media_root, '.logo.png')
        self.use_logo((100, 100))

    def use_logo(self, size, color=WHITE):
        Image.new('RGBA', size, color).save(self.logo_path, format='PNG')
        override = override_settings(WATERMARK_LOGO_PATH=self.logo_path)
        override.enable()
        self.addCleanup(override.disable)

    def put_source(self, filename, content):
        with open(os.path.join(self.media_root, filename), 'wb') as f:
            f.write(content)
        return filename


def decode(data):
    return Image.open(BytesIO(data)).convert('RGB')


def assert_near(test, pixel, expected, tolerance=12):
    for got, want in zip(pixel, expected):
        test.assertLessEqual(abs(got - want), tolerance, f'{pixel} not near {expected}')


class RenderWatermarkedTests(WatermarkMediaMixin, SimpleTestCase):
    """
    Test suite for render_watermarked
    """

    def test_render_places_logo_bottom_right(self):
        """Test the half-opaque logo lands at (790, 790) on a 1000px source"""
        name = self.put_source('1-1-1.png', image_bytes((1000, 1000), BLACK))

        output = decode(render_watermarked(name))

        self.assertEqual(output.size, (1000, 1000))
        assert_near(self, output.getpixel((890, 890)), (128, 128, 128))
        assert_near(self, output.getpixel((795, 795)), (128, 128, 128))
        assert_near(self, output.getpixel((500, 500)), BLACK)
        assert_near(self, output.getpixel((770, 890)), BLACK)
        assert_near(self, output.getpixel((996, 996)), BLACK)

    def test_render_non_square_logo_not_flush(self):
        """Test a wide logo keeps the width based top offset"""
        self.use_logo((100, 50))
        name = self.put_source('1-1-2.png', image_bytes((1000, 1000), BLACK))

        output = decode(render_watermarked(name))

        # logo spans rows 790..889, leaving a gap above the bottom margin
        assert_near(self, output.getpixel((890, 840)), (128, 128, 128))
        assert_near(self, output.getpixel((890, 950)), BLACK)

    def test_composite_half_opacity(self):
        """Test an opaque white logo blends to mid grey over black"""
        source = Image.new('RGB', (1000, 1000), BLACK)
        logo = Image.new('RGBA', (100, 100), WHITE)

        output = decode(composite(source, logo, quality=100))

        assert_near(self, output.getpixel((890, 890)), (128, 128, 128), tolerance=3)
        assert_near(self, output.getpixel((795, 985)), (128, 128, 128), tolerance=3)
        assert_near(self, output.getpixel((780, 890)), BLACK, tolerance=3)

    def test_render_outputs_jpeg(self):
        """Test output is JPEG whatever the source format"""
        name = self.put_source('1-1-3.png', image_bytes((120, 80), (10, 200, 10), mode='RGB'))

        data = render_watermarked(name)

        self.assertEqual(Image.open(BytesIO(data)).format, 'JPEG')

    def test_render_source_with_alpha(self):
        """Test a transparent PNG source is flattened"""
        name = self.put_source('1-1-4.png', image_bytes((200, 200), (0, 0, 0, 0), mode='RGBA'))

        output = Image.open(BytesIO(render_watermarked(name)))

        self.assertEqual(output.mode, 'RGB')

    def test_render_does_not_modify_source(self):
        """Test rendering leaves the stored original untouched"""
        original = image_bytes((300, 200))
        name = self.put_source('1-1-5.png', original)

        render_watermarked(name)

        with open(os.path.join(self.media_root, name), 'rb') as f:
            self.assertEqual(f.read(), original)

    def test_render_concurrent_identical(self):
        """Test parallel renders of one file are byte identical"""
        name = self.put_source('1-1-6.jpg', image_bytes((640, 480), (40, 90, 160), fmt='JPEG'))

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: render_watermarked(name), range(16)))

        self.assertEqual(len(set(results)), 1)

    def test_render_missing_file(self):
        """Test a name with no stored file is NotFound"""
        with self.assertRaises(NotFound):
            render_watermarked('1-does-not-exist.png')

    def test_render_corrupt_source(self):
        """Test an undecodable source is a RenderError"""
        name = self.put_source('1-1-7.png', b'definitely not an image')

        with self.assertRaises(RenderError):
            render_watermarked(name)

    def test_render_missing_logo(self):
        """Test a missing brand logo is a RenderError"""
        name = self.put_source('1-1-8.png', image_bytes())
        os.remove(self.logo_path)

        with self.assertRaises(RenderError):
            render_watermarked(name)

    def test_resolve_rejects_traversal(self):
        """Test names that could leave the store are refused"""
        secret = os.path.join(os.path.dirname(self.media_root), 'secret.png')
        for name in ('../secret.png', '..', '.', '', 'a/b.png', 'a\\b.png', '.logo.png', f'{secret}'):
            with self.assertRaises(NotFound, msg=name):
                resolve_asset(name)


class WatermarkAPITests(WatermarkMediaMixin, APITestCase):
    """
    Test suite for GET /api/photos/watermarked/<filename>
    """

    def setUp(self):
        super().setUp()
        self.name = self.put_source('5-1700000000000-42.png', image_bytes((1000, 1000), BLACK))

    def test_watermarked_without_token(self):
        """Test the preview is public"""
        response = self.client.get(reverse('photo_watermarked', kwargs={'filename': self.name}))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response['Content-Type'], 'image/jpeg')
        self.assertEqual(Image.open(BytesIO(response.content)).size, (1000, 1000))

    def test_watermarked_ignores_bad_token(self):
        """Test an invalid token does not block the public preview"""
        self.client.credentials(HTTP_AUTHORIZATION='Bearer broken.token.here')

        response = self.client.get(reverse('photo_watermarked', kwargs={'filename': self.name}))

        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_watermarked_with_token(self):
        """Test an authenticated caller gets the same preview"""
        self.authenticate(make_user())

        response = self.client.get(reverse('photo_watermarked', kwargs={'filename': self.name}))

        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_watermarked_missing(self):
        """Test an unknown filename is a 404"""
        response = self.client.get(reverse('photo_watermarked', kwargs={'filename': 'nope.png'}))

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_watermarked_dot_segments(self):
        """Test dot names do not reach outside the store"""
        response = self.client.get('/api/photos/watermarked/..')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_watermarked_corrupt(self):
        """Test a corrupt source is a generic 500"""
        name = self.put_source('5-1-bad.png', b'\x89PNG truncated')

        response = self.client.get(reverse('photo_watermarked', kwargs={'filename': name}))

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data['detail'], 'Error generating watermarked image')


class RawUploadTests(TemporaryMediaMixin, APITestCase):
    """
    Test suite for the public /uploads/ mount
    """

    def test_raw_original_is_public(self):
        """Test the stored original can be fetched without a token"""
        content = image_bytes()
        with open(os.path.join(self.media_root, '9-1-1.png'), 'wb') as f:
            f.write(content)

        response = self.client.get('/uploads/9-1-1.png')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(b''.join(response.streaming_content), content)

    def test_raw_missing(self):
        """Test an unknown raw file is a 404"""
        response = self.client.get('/uploads/missing.png')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
