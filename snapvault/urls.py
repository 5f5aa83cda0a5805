from django.conf import settings
from django.urls import include, path, re_path

from gallery.views import raw_upload

urlpatterns = [
    path('api/', include('gallery.urls')),
    re_path(r'^%s(?P<path>.+)$' % settings.MEDIA_URL.lstrip('/'), raw_upload, name='raw_upload'),
]
