"""
URL configuration for Order Fulfillment & Returns.

Workflow endpoints keep the fixed ``package/...``, ``return/...`` and
``transport/...`` paths; read-only listings are served by the router.
"""

from django.urls import path
from rest_framework.routers import DefaultRouter

from .views import OrderViewSet, PackageViewSet, TransportViewSet, ReturnViewSet, AuditLogViewSet

# Create router and register viewsets
router = DefaultRouter()
router.register(r'orders', OrderViewSet, basename='order')
router.register(r'packages', PackageViewSet, basename='package')
router.register(r'transports', TransportViewSet, basename='transport')
router.register(r'returns', ReturnViewSet, basename='return')
router.register(r'audit-logs', AuditLogViewSet, basename='audit-log')

# URL patterns
urlpatterns = [
    path('package/status/<uuid:pk>', PackageViewSet.as_view({'post': 'update_status'}),
         name='fulfillment-package-update-status'),
    path('package/assign-transport/<uuid:pk>', PackageViewSet.as_view({'post': 'assign_transport'}),
         name='fulfillment-package-assign-transport'),

    path('return/initiate', ReturnViewSet.as_view({'post': 'initiate'}),
         name='fulfillment-return-initiate'),
    path('return/schedule-pickup/<uuid:pk>', ReturnViewSet.as_view({'post': 'schedule_pickup'}),
         name='fulfillment-return-schedule-pickup'),
    path('return/picked-up/<uuid:pk>', ReturnViewSet.as_view({'post': 'picked_up'}),
         name='fulfillment-return-picked-up'),
    path('return/received/<uuid:pk>', ReturnViewSet.as_view({'post': 'received'}),
         name='fulfillment-return-received'),
    path('return/process/<uuid:pk>', ReturnViewSet.as_view({'post': 'process'}),
         name='fulfillment-return-process'),

    path('transport/status/<uuid:pk>', TransportViewSet.as_view({'patch': 'update_status'}),
         name='fulfillment-transport-update-status'),
] + router.urls
