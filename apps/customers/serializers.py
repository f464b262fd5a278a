from rest_framework import serializers
from .models import CustomerProfile


class CustomerProfileSerializer(serializers.ModelSerializer):
    class Meta:
        model = CustomerProfile
        fields = [
            "id",
            "name",
            "surname",
            "email",
            "phone",
            "street",
            "city",
            "state",
            "postal_code",
            "country",
            "updated_at",
        ]
        read_only_fields = fields
