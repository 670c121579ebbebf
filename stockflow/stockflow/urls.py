"""
URL configuration for stockflow project.

The fulfillment API is mounted under ``/api/v1/``; JWT token endpoints are
provided by simplejwt.
"""
from django.contrib import admin
from django.urls import path, include
from django.http import JsonResponse
from django.views.decorators.http import require_http_methods
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView


@require_http_methods(["GET"])
def api_root(request):
    """API root view with available endpoints."""
    return JsonResponse({
        'message': 'Stockflow Fulfillment API',
        'version': '1.0.0',
        'endpoints': {
            'authentication': {
                'token': '/api/v1/auth/token/',
                'token_refresh': '/api/v1/auth/token/refresh/',
            },
            'fulfillment': {
                'orders': '/api/v1/orders/',
                'packages': '/api/v1/packages/',
                'transports': '/api/v1/transports/',
                'returns': '/api/v1/returns/',
                'audit_logs': '/api/v1/audit-logs/',
            },
        }
    })


urlpatterns = [
    path("admin/", admin.site.urls),

    # API endpoints
    path('api/v1/', api_root, name='api-root'),  # Exact match for /api/v1/ (must be first)
    path('api/v1/auth/token/', TokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('api/v1/auth/token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
    path('api/v1/', include('fulfillment.urls')),
]
