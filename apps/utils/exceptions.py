from django.core.exceptions import ObjectDoesNotExist
from rest_framework.views import exception_handler
from rest_framework.response import Response
from rest_framework import status
import logging

logger = logging.getLogger(__name__)


class BusinessLogicException(Exception):
    """
    Raised when a domain rule is violated (e.g. 'Cart is empty').
    """
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message, code="business_error"):
        self.message = message
        self.code = code
        super().__init__(message)

    def as_payload(self) -> dict:
        return {"error": self.message, "code": self.code}


def custom_exception_handler(exc, context):
    # Call REST framework's default exception handler first
    response = exception_handler(exc, context)

    # Handle domain exceptions (subclasses may carry their own status / payload)
    if isinstance(exc, BusinessLogicException):
        return Response(exc.as_payload(), status=exc.status_code)

    if isinstance(exc, ObjectDoesNotExist):
        return Response(
            {"error": "Not found.", "code": "not_found"},
            status=status.HTTP_404_NOT_FOUND,
        )

    # If response is None, it's an unhandled server error (500)
    if response is None:
        logger.error(f"Unhandled Exception: {exc}", exc_info=True)
        return Response(
            {"error": "Internal Server Error", "code": "server_error"},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    return response
