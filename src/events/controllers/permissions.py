from django.http import HttpRequest
from ninja_extra import ControllerBase
from ninja_extra.exceptions import PermissionDenied
from ninja_extra.permissions import BasePermission

from events import models


class RootPermission(BasePermission):
    def __init__(self, action: str) -> None:
        """Store the action."""
        self.action = action

    def has_permission(self, request: HttpRequest, controller: ControllerBase) -> bool:
        """Must implement abstract method. This is due to an error in Ninja Extra.

        This Method will be ignored, only has_object_permission will be called.
        """
        return True


class IsOrganizationStaff(RootPermission):
    def __init__(self) -> None:
        """Override init."""
        super().__init__(action="operate_box_office")

    def has_object_permission(
        self,
        request: HttpRequest,
        controller: ControllerBase,
        obj: models.Organization,
    ) -> bool:
        """Owners and staff members may operate the box office."""
        if obj.is_owner_or_staff(request.user):
            return True
        raise PermissionDenied("You must be a staff member of this organization.")
