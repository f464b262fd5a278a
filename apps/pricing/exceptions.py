from apps.utils.exceptions import BusinessLogicException


class CouponError(BusinessLogicException):
    """Coupon unknown, inactive, outside its window, or over a usage cap."""

    def __init__(self, message, code="coupon_invalid"):
        super().__init__(message, code=code)
