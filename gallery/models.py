from django.contrib.auth.models import AbstractUser, BaseUserManager
from django.db import models
from django.utils import timezone


class UserManager(BaseUserManager):
    """
    Creates users keyed by email; there is no username
    """
    use_in_migrations = True

    def _create_user(self, email, password, **extra_fields):
        if not email:
            raise ValueError('The email must be set')
        email = self.normalize_email(email)
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_user(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', False)
        extra_fields.setdefault('is_superuser', False)
        return self._create_user(email, password, **extra_fields)

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        return self._create_user(email, password, **extra_fields)


class User(AbstractUser):
    username = None
    email = models.EmailField(unique=True)
    phone = models.CharField(max_length=32)
    company = models.CharField(max_length=255)
    created_at = models.DateTimeField(auto_now_add=True)

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = []

    objects = UserManager()

    def __str__(self):
        return self.email


class Photo(models.Model):
    """
    Index entry for one stored upload. `filename` names the blob in the
    asset store; the row and the blob are created and removed together.
    """
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='photos')
    filename = models.CharField(max_length=255, unique=True)
    original_name = models.CharField(max_length=255, blank=True)
    upload_date = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        db_table = 'photos'
        ordering = ['-upload_date', '-id']
        indexes = [
            models.Index(fields=['user', 'upload_date'], name='photos_user_upload_idx'),
        ]

    def __str__(self):
        return f"{self.user_id}: {self.filename}"
