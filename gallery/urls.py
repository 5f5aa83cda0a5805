from django.urls import path
from . import views

urlpatterns = [
    path('signup', views.signup, name='signup'),
    path('login', views.login, name='login'),
    path('photos', views.photo_list, name='photo_list'),
    path('photos/upload', views.photo_upload, name='photo_upload'),
    path('photos/watermarked/<str:filename>', views.photo_watermarked, name='photo_watermarked'),
    path('photos/<int:photo_id>', views.photo_delete, name='photo_delete'),
    path('protected', views.protected, name='protected'),
]
