"""
apps/chat/urls.py
=================
Mounted at /api/ by config/urls.py. Login / refresh / verify live there too,
next to register, under /api/auth/.

Channels are added with POST /api/channels/ so that every name, including
"add", can be removed with DELETE /api/channels/<name>/.
"""

from django.urls import path

from . import views

urlpatterns = [
    path("health/",        views.health,   name="health"),
    path("auth/register/", views.register, name="register"),

    path("channels/",            views.channels,       name="channels"),
    path("channels/<str:name>/", views.channel_remove, name="channel-remove"),

    path("messages/",            views.message_list,        name="message-list"),
    path("messages/by-channel/", views.messages_by_channel, name="messages-by-channel"),
    path("messages/<int:pk>/",   views.message_detail,      name="message-detail"),

    path("leaderboard/",            views.leaderboard,            name="leaderboard"),
    path("scatterplot/",            views.scatterplot,            name="scatterplot"),
    path("channel-activity/",       views.channel_activity,       name="channel-activity"),
    path("sentiment-distribution/", views.sentiment_distribution, name="sentiment-distribution"),
]
