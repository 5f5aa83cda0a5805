from django.conf import settings
from django.http import Http404, HttpResponse
from django.views.static import serve
from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from .authentication import with_identity
from .permissions import delete_photo, owned_photos
from .serializers import PhotoSerializer, UserLoginSerializer, UserSignupSerializer
from .storage import is_safe_name
from .uploads import UploadPolicy, collect_files, store_uploads
from .watermark import render_watermarked


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def signup(request):
    """
    Register a new user account and issue a token
    """
    serializer = UserSignupSerializer(data=request.data)
    if serializer.is_valid():
        user = serializer.save()
        return Response(serializer.to_representation(user), status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def login(request):
    """
    Check email and password and issue a token
    """
    serializer = UserLoginSerializer(data=request.data, context={'request': request})
    if serializer.is_valid():
        return Response(serializer.to_representation(serializer.validated_data), status=status.HTTP_200_OK)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@with_identity
def photo_upload(request, identity):
    """
    Upload up to ten images in the `photo` field. Files that are not images
    or are too large are skipped; the response lists what was stored.
    """
    policy = UploadPolicy.from_settings()
    files = collect_files(request, policy)
    photos = store_uploads(identity.user_id, files, policy)
    return Response(
        {'message': 'Photos uploaded successfully', 'photos': PhotoSerializer(photos, many=True).data},
        status=status.HTTP_201_CREATED,
    )


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@with_identity
def photo_list(request, identity):
    """
    The caller's photos, newest first
    """
    photos = owned_photos(identity.user_id)
    return Response({'photos': PhotoSerializer(photos, many=True).data})


@api_view(['DELETE'])
@permission_classes([IsAuthenticated])
@with_identity
def photo_delete(request, identity, photo_id):
    delete_photo(photo_id, identity)
    return Response({'message': 'Photo deleted successfully'}, status=status.HTTP_200_OK)


@api_view(['GET'])
@authentication_classes([])
@permission_classes([AllowAny])
def photo_watermarked(request, filename):
    """
    Public watermarked preview of a stored image
    """
    return HttpResponse(render_watermarked(filename), content_type='image/jpeg')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@with_identity
def protected(request, identity):
    return Response({
        'message': 'This is a protected route',
        'user': {'user_id': identity.user_id, 'email': identity.email},
    })


def raw_upload(request, path):
    """
    Raw originals, readable by anyone who has the generated filename.
    """
    if not is_safe_name(path):
        raise Http404('Image not found')
    return serve(request, path, document_root=settings.MEDIA_ROOT)
