import logging

from django.db import transaction

from .models import CustomerProfile

logger = logging.getLogger(__name__)

CUSTOMER_FIELDS = ("name", "surname", "email", "phone")
ADDRESS_FIELDS = ("street", "city", "state", "postal_code", "country")


class CustomerService:

    @staticmethod
    def get_profile(user):
        if not user or not user.is_authenticated:
            return None
        return CustomerProfile.objects.filter(user=user).first()

    @staticmethod
    def get_or_create_profile(user):
        profile, _ = CustomerProfile.objects.get_or_create(user=user)
        return profile

    @staticmethod
    @transaction.atomic
    def upsert_profile(user, customer: dict, address: dict) -> CustomerProfile:
        """
        Overwrite the buyer's profile with what they just checked out with.
        Joins the caller's transaction when there is one.
        """
        profile, created = (
            CustomerProfile.objects
            .select_for_update()
            .get_or_create(user=user)
        )

        for field in CUSTOMER_FIELDS:
            setattr(profile, field, (customer.get(field) or "").strip())
        for field in ADDRESS_FIELDS:
            setattr(profile, field, (address.get(field) or "").strip())

        profile.save()
        logger.info("Customer profile %s for user %s", "created" if created else "updated", user.pk)
        return profile
