"""URL configuration for the boxoffice project."""

from django.conf import settings
from django.contrib import admin
from django.urls import path

from api.api import api

admin.site.site_header = f"{settings.SITE_NAME} v{settings.VERSION} Admin"

urlpatterns = [
    path("api/", api.urls),
    path("admin/", admin.site.urls),
]
