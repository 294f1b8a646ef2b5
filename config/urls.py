"""
config/urls.py
==============
  /admin/               — Django admin (tracked channel sets, messages)
  /api/                 — apps.chat endpoints (see apps/chat/urls.py)
  /api/auth/login/      — obtain JWT access + refresh tokens (POST)
  /api/auth/refresh/    — refresh an access token (POST)
  /api/auth/verify/     — verify a token is still valid (POST)

The token endpoints and /api/auth/register/ are unauthenticated; everything
else under /api/ needs a Bearer token unless called with ?global=true.
"""

from django.contrib import admin
from django.urls import path, include
from rest_framework_simplejwt.views import (
    TokenObtainPairView,
    TokenRefreshView,
    TokenVerifyView,
)

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/auth/login/",   TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("api/auth/refresh/", TokenRefreshView.as_view(),    name="token_refresh"),
    path("api/auth/verify/",  TokenVerifyView.as_view(),     name="token_verify"),
    path("api/", include("apps.chat.urls")),
]
