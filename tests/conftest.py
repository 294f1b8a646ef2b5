"""
Shared fixtures.

Django-side tests use pytest-django (settings in tests/settings.py). The chat
listener tests never touch Django or Postgres; they inject fakes for storage
and for the Twitch connection.
"""

from datetime import datetime, timezone

import pytest

from chat_listener.processing import metrics


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture(autouse=True)
def clear_cache():
    from django.core.cache import cache
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def fixed_now():
    return datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)


@pytest.fixture
def make_tenant(db, django_user_model):
    counter = {"n": 0}

    def _make(username=None, **kwargs):
        counter["n"] += 1
        username = username or f"tenant{counter['n']}"
        return django_user_model.objects.create_user(username=username, password="pw-not-used-1", **kwargs)

    return _make


@pytest.fixture
def tenant(make_tenant):
    return make_tenant("alice")


@pytest.fixture
def make_message(db):
    from apps.chat.models import ChatMessage

    def _make(tenant, username="viewer", score=0.0, label=None, channel="somechannel",
              timestamp=None, text="hello chat"):
        if label is None:
            label = "positive" if score > 1 else "negative" if score < -1 else "neutral"
        return ChatMessage.objects.create(
            tenant=tenant,
            channel=channel,
            username=username,
            message_text=text,
            sentiment_label=label,
            sentiment_score=score,
            timestamp=timestamp or datetime.now(timezone.utc),
        )

    return _make


@pytest.fixture
def api_client():
    from rest_framework.test import APIClient
    return APIClient()


@pytest.fixture
def auth_client(api_client, tenant):
    api_client.force_authenticate(user=tenant)
    return api_client
