import typing as t

from django.contrib.auth.models import AnonymousUser, User
from ninja_extra import ControllerBase


class UserAwareController(ControllerBase):
    def maybe_user(self) -> User | AnonymousUser:
        """Get the user for this request."""
        return t.cast(User | AnonymousUser, self.context.request.user)  # type: ignore[union-attr]

    def user(self) -> User:
        """Get the user for this request."""
        return t.cast(User, self.context.request.user)  # type: ignore[union-attr]
