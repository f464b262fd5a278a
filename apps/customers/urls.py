from django.urls import path
from .views import CustomerViewSet

urlpatterns = [
    path('profile/', CustomerViewSet.as_view({'get': 'profile'}), name='customer-profile'),
]
