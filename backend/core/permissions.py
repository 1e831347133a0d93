from rest_framework.permissions import BasePermission


class IsAdminRole(BasePermission):
    """Portal administrators (role ADMIN) and superusers"""
    message = 'Administrator access required.'

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and user.is_portal_admin)


class IsDistributorRole(BasePermission):
    """Distributor accounts with a linked distributor profile"""
    message = 'Distributor access required.'

    def has_permission(self, request, view):
        user = request.user
        return bool(
            user and user.is_authenticated and user.is_distributor
            and hasattr(user, 'distributor_profile')
        )
