from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="TrackedChannelSet",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("channels", models.JSONField(blank=True, default=list)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("tenant", models.OneToOneField(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name="tracked_channels",
                    to=settings.AUTH_USER_MODEL,
                )),
            ],
            options={
                "db_table": "tracked_channels",
                "verbose_name": "Tracked channel set",
            },
        ),
        migrations.CreateModel(
            name="ChatMessage",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("channel", models.CharField(max_length=100)),
                ("username", models.CharField(max_length=100)),
                ("external_user_id", models.CharField(blank=True, max_length=50, null=True)),
                ("message_text", models.TextField()),
                ("sentiment_label", models.CharField(
                    choices=[("positive", "Positive"), ("negative", "Negative"), ("neutral", "Neutral")],
                    max_length=10,
                )),
                ("sentiment_score", models.FloatField()),
                ("timestamp", models.DateTimeField()),
                ("badges", models.JSONField(blank=True, default=dict)),
                ("color", models.CharField(default="#ffffff", max_length=16)),
                ("tenant", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name="chat_messages",
                    to=settings.AUTH_USER_MODEL,
                )),
            ],
            options={
                "db_table": "chat_messages",
                "ordering": ["-timestamp"],
            },
        ),
        migrations.AddIndex(
            model_name="chatmessage",
            index=models.Index(fields=["tenant", "timestamp"], name="chat_msg_tenant_ts_idx"),
        ),
        migrations.AddIndex(
            model_name="chatmessage",
            index=models.Index(fields=["timestamp"], name="chat_msg_ts_idx"),
        ),
        migrations.AddIndex(
            model_name="chatmessage",
            index=models.Index(fields=["username"], name="chat_msg_username_idx"),
        ),
    ]
