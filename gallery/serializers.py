import logging

from django.contrib.auth import authenticate
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.urls import reverse
from rest_framework import serializers

from .authentication import issue_token
from .exceptions import InvalidCredentials
from .models import Photo, User

logger = logging.getLogger(__name__)


def public_user(user):
    return {
        'id': user.id,
        'first_name': user.first_name,
        'last_name': user.last_name,
        'email': user.email,
    }


class UserSignupSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True)

    class Meta:
        model = User
        fields = ('id', 'email', 'password', 'first_name', 'last_name', 'phone', 'company')
        extra_kwargs = {
            'first_name': {'required': True, 'allow_blank': False},
            'last_name': {'required': True, 'allow_blank': False},
        }

    def validate(self, attrs):
        candidate = User(**{k: v for k, v in attrs.items() if k != 'password'})
        try:
            validate_password(attrs['password'], user=candidate)
        except DjangoValidationError as e:
            raise serializers.ValidationError({'password': list(e.messages)})
        return attrs

    def create(self, validated_data):
        try:
            with transaction.atomic():
                user = User.objects.create_user(**validated_data)
        except IntegrityError:
            # lost a race with a concurrent signup for the same email
            raise serializers.ValidationError({'email': ['User already exists']})
        logger.info("Created user %s", user.pk)
        return user

    def to_representation(self, instance):
        return {
            'message': 'User created successfully',
            'token': issue_token(instance),
            'user': public_user(instance),
        }


class UserLoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True)

    def validate(self, attrs):
        user = authenticate(
            self.context.get('request'),
            email=User.objects.normalize_email(attrs['email']),
            password=attrs['password'],
        )
        if user is None:
            logger.info("Failed login attempt")
            raise InvalidCredentials()
        attrs['user'] = user
        return attrs

    def to_representation(self, instance):
        user = instance['user']
        return {
            'message': 'Login successful',
            'token': issue_token(user),
            'user': public_user(user),
        }


class PhotoSerializer(serializers.ModelSerializer):
    """
    Serializer for a photo index entry
    """
    url = serializers.SerializerMethodField()
    watermarked_url = serializers.SerializerMethodField()

    class Meta:
        model = Photo
        fields = ('id', 'user', 'filename', 'original_name', 'upload_date', 'url', 'watermarked_url')
        read_only_fields = fields

    def get_url(self, obj):
        return reverse('raw_upload', kwargs={'path': obj.filename})

    def get_watermarked_url(self, obj):
        return reverse('photo_watermarked', kwargs={'filename': obj.filename})
