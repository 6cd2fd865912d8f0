"""
Permission classes for the exchange API.
"""

from rest_framework import permissions


class IsStaffUser(permissions.BasePermission):
    """
    Allows access only to authenticated staff members.

    Used by the admin points award endpoint.
    """

    message = 'You do not have permission to perform this action. Staff privileges required.'

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        return request.user.is_staff


class IsSwapParticipant(permissions.BasePermission):
    """
    Object-level check that the caller is the requester or the target of a swap.

    The exchange services enforce which of the two may perform a given
    action; this only keeps outsiders from learning about the swap.
    """

    message = 'You are not a participant in this swap.'

    def has_object_permission(self, request, view, obj):
        if not request.user or not request.user.is_authenticated:
            return False
        return request.user.id in (obj.requester_id, obj.target_user_id)
