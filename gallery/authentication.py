"""
Token issuance and verification.

Protected views never read identity off the request themselves; they are
wrapped with `with_identity` and receive a verified `Identity` argument.
"""
import logging
from dataclasses import dataclass
from functools import wraps

from django.contrib.auth import get_user_model
from rest_framework.exceptions import AuthenticationFailed, NotAuthenticated, PermissionDenied
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError
from rest_framework_simplejwt.settings import api_settings
from rest_framework_simplejwt.tokens import AccessToken

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    user_id: int
    email: str

    @classmethod
    def from_token(cls, token):
        # the claim may be serialized as a string; compare as the primary key type
        user_id = get_user_model()._meta.pk.to_python(token[api_settings.USER_ID_CLAIM])
        return cls(user_id=user_id, email=token.get('email', ''))


def issue_token(user):
    """Signed access token for `user`, valid for ACCESS_TOKEN_LIFETIME (24h)."""
    token = AccessToken.for_user(user)
    token['email'] = user.email
    return str(token)


def verify(raw_token):
    """
    Check signature and expiry of `raw_token` and return who it names.
    Raises InvalidToken otherwise.
    """
    try:
        token = AccessToken(raw_token)
    except TokenError as e:
        raise InvalidToken(str(e))
    return Identity.from_token(token)


class BearerTokenAuthentication(JWTAuthentication):
    """
    No bearer header leaves the request anonymous, which DRF answers with 401.
    A header carrying a bad, expired or orphaned token is refused with 403.
    """

    def authenticate(self, request):
        try:
            return super().authenticate(request)
        except AuthenticationFailed as e:
            logger.info("Rejected bearer token: %s", e.detail)
            raise PermissionDenied('Invalid token')


def with_identity(view):
    """
    Pass the verified identity into `view` as its second positional argument.
    Must sit below @api_view so authentication has already run.
    """
    @wraps(view)
    def wrapper(request, *args, **kwargs):
        if request.auth is None:
            raise NotAuthenticated()
        return view(request, Identity.from_token(request.auth), *args, **kwargs)
    return wrapper
