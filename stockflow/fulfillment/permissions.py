"""
Custom permissions for the fulfillment and returns API.

Roles map onto Django groups: ``warehouse_staff``, ``warehouse_admin`` and
``transporter``. Django staff users pass every staff check.
"""

from rest_framework.permissions import BasePermission

STAFF_GROUP = 'warehouse_staff'
ADMIN_GROUP = 'warehouse_admin'
TRANSPORTER_GROUP = 'transporter'


def in_group(user, *names) -> bool:
    return user.groups.filter(name__in=names).exists()


class IsWarehouseStaff(BasePermission):
    """
    Permission that allows access only to warehouse staff users.

    Checks if user is staff or belongs to the 'warehouse_staff' or
    'warehouse_admin' group.
    """

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False

        if user.is_staff:
            return True

        return in_group(user, STAFF_GROUP, ADMIN_GROUP)


class IsAdminRole(BasePermission):
    """
    Permission for final return dispositions.

    Restricted to superusers and the 'warehouse_admin' group.
    """

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False

        return user.is_superuser or in_group(user, ADMIN_GROUP)


class IsTransporterOrStaff(BasePermission):
    """
    Permission for transport status updates.

    Warehouse staff may update any transport; a transporter only the
    transports assigned to them.
    """

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False

        if IsWarehouseStaff().has_permission(request, view):
            return True

        return in_group(user, TRANSPORTER_GROUP)

    def has_object_permission(self, request, view, obj):
        if IsWarehouseStaff().has_permission(request, view):
            return True

        return obj.transporter_id == transporter_identity(request.user)


def transporter_identity(user) -> str:
    """Identifier stored as ``transporter_id`` for a transporter account."""
    return str(user.pk)
