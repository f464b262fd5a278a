from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from django.test import TestCase
from django.urls import reverse

from rest_framework.test import APITestCase
from rest_framework import status

from .models import CustomerProfile
from .services import CustomerService

User = get_user_model()


class CustomerServiceTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="ana", password="pw")

    def test_upsert_creates_then_overwrites(self):
        CustomerService.upsert_profile(
            self.user,
            {"name": "Ana", "surname": "Diaz", "email": "ana@example.com", "phone": "555"},
            {"street": "Calle 1", "city": "Bogota", "postal_code": "110111", "country": "CO"},
        )
        CustomerService.upsert_profile(
            self.user,
            {"name": "Ana", "surname": "Diaz", "email": "new@example.com"},
            {"street": " Calle 2 ", "city": "Cali", "postal_code": "760001", "country": "CO"},
        )

        self.assertEqual(CustomerProfile.objects.filter(user=self.user).count(), 1)
        profile = CustomerService.get_profile(self.user)
        self.assertEqual(profile.email, "new@example.com")
        self.assertEqual(profile.street, "Calle 2")
        self.assertEqual(profile.phone, "")
        self.assertEqual(profile.address_dict()["city"], "Cali")

    def test_no_profile_for_anonymous(self):
        self.assertIsNone(CustomerService.get_profile(AnonymousUser()))
        self.assertIsNone(CustomerService.get_profile(None))


class CustomerProfileAPITests(APITestCase):
    def test_requires_authentication(self):
        res = self.client.get(reverse("customer-profile"))
        self.assertIn(res.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))

    def test_returns_own_profile(self):
        user = User.objects.create_user(username="bo", password="pw")
        CustomerService.upsert_profile(user, {"name": "Bo"}, {"city": "Lima"})
        self.client.force_authenticate(user)

        res = self.client.get(reverse("customer-profile"))
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["name"], "Bo")
        self.assertEqual(res.data["city"], "Lima")
