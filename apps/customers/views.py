from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from .serializers import CustomerProfileSerializer
from .services import CustomerService


class CustomerViewSet(viewsets.GenericViewSet):
    permission_classes = [IsAuthenticated]

    @action(detail=False, methods=['get'])
    def profile(self, request):
        """
        GET /api/v1/customers/profile/
        Returns current user's customer profile (empty until the first checkout).
        """
        profile = CustomerService.get_or_create_profile(request.user)
        serializer = CustomerProfileSerializer(profile)
        return Response(serializer.data)
