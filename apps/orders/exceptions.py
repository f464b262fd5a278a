from rest_framework import status

from apps.utils.exceptions import BusinessLogicException


class CheckoutValidationError(BusinessLogicException):
    """
    Checkout rejected before any write. `fields` maps a form field to its message.
    """

    def __init__(self, fields: dict, message="Please review your checkout details.", code="checkout_invalid"):
        self.fields = dict(fields)
        super().__init__(message, code=code)

    def as_payload(self) -> dict:
        payload = super().as_payload()
        payload["fields"] = self.fields
        return payload


class PaymentMethodGuardError(BusinessLogicException):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message="A payment proof was already uploaded; the order cannot switch to cash.",
                 code="payment_method_locked"):
        super().__init__(message, code=code)


class ProofUploadError(BusinessLogicException):
    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, message="The payment proof could not be uploaded. Please try again.",
                 code="proof_upload_failed"):
        super().__init__(message, code=code)
