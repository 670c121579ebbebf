"""
Order Fulfillment & Returns Views
"""

from .order_views import OrderViewSet
from .package_views import PackageViewSet
from .transport_views import TransportViewSet
from .return_views import ReturnViewSet
from .audit_views import AuditLogViewSet

__all__ = [
    'OrderViewSet',
    'PackageViewSet',
    'TransportViewSet',
    'ReturnViewSet',
    'AuditLogViewSet',
]
