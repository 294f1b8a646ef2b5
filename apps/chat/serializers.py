from django.contrib.auth import get_user_model
from django.contrib.auth import password_validation
from rest_framework import serializers

from .models import ChatMessage

User = get_user_model()


class ChatMessageSerializer(serializers.ModelSerializer):
    class Meta:
        model = ChatMessage
        fields = (
            "id",
            "channel",
            "username",
            "external_user_id",
            "message_text",
            "sentiment_label",
            "sentiment_score",
            "timestamp",
            "badges",
            "color",
        )
        read_only_fields = fields


class RegisterSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, min_length=8, style={"input_type": "password"})

    class Meta:
        model = User
        fields = ("id", "username", "email", "password")
        read_only_fields = ("id",)

    def validate_password(self, value):
        password_validation.validate_password(value)
        return value

    def create(self, validated_data):
        return User.objects.create_user(
            username=validated_data["username"],
            email=validated_data.get("email", ""),
            password=validated_data["password"],
        )


class ChatMessageUpdateSerializer(serializers.ModelSerializer):
    """Fields a tenant may correct by hand; everything else stays as ingested."""

    class Meta:
        model = ChatMessage
        fields = ("message_text", "sentiment_label", "sentiment_score")
