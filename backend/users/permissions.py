from rest_framework import permissions
from .models import User


class IsOwner(permissions.BasePermission):
    """
    Only the owner of an object may change it, admins included.
    """

    message = "Not authorized to access this record"

    def has_object_permission(self, request, view, obj):
        if hasattr(obj, "user_id"):
            return obj.user_id == request.user.pk
        return obj == request.user


class IsOwnerOrAdmin(permissions.BasePermission):
    """
    Custom permission to only allow owners of an object to read it.
    Admins can read anything.
    """

    message = "Not authorized to access this record"

    def has_object_permission(self, request, view, obj):
        if request.user.role == User.ROLE_ADMIN:
            return True
        if hasattr(obj, "user_id"):
            return obj.user_id == request.user.pk
        return obj == request.user
