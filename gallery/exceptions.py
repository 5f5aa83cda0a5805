import logging

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class InvalidCredentials(APIException):
    """
    Login failure. Unknown email and wrong password share this response.
    """
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = 'Invalid credentials'
    default_code = 'invalid_credentials'


class RenderError(APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = 'Error generating watermarked image'
    default_code = 'render_error'


class StorageError(APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = 'Error accessing photo storage'
    default_code = 'storage_error'


def exception_handler(exc, context):
    """
    DRF exception handler that turns anything DRF does not recognise into a
    generic 500. The cause is logged; nothing of it reaches the client.
    """
    response = drf_exception_handler(exc, context)
    if response is not None:
        return response

    view = context.get('view')
    logger.error(
        "Unhandled error in %s: %s",
        view.__class__.__name__ if view is not None else 'unknown view',
        exc,
        exc_info=(type(exc), exc, exc.__traceback__),
    )
    return Response(
        {'detail': 'Internal server error.'},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
