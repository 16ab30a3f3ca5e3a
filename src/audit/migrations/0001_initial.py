import uuid

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="AuditLogEntry",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("user_id", models.CharField(db_index=True, max_length=64)),
                ("action", models.CharField(db_index=True, max_length=100)),
                ("resource", models.CharField(db_index=True, max_length=100)),
                ("resource_id", models.CharField(blank=True, max_length=64, null=True)),
                ("details", models.JSONField(blank=True, default=dict)),
                ("ip_address", models.CharField(blank=True, max_length=64, null=True)),
                ("user_agent", models.CharField(blank=True, max_length=512, null=True)),
                (
                    "severity",
                    models.CharField(
                        choices=[("low", "Low"), ("medium", "Medium"), ("high", "High"), ("critical", "Critical")],
                        db_index=True,
                        default="low",
                        max_length=10,
                    ),
                ),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [
                    models.Index(fields=["user_id", "created_at"], name="audit_user_created_idx"),
                    models.Index(fields=["action", "created_at"], name="audit_action_created_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="SecurityEvent",
            fields=[
                (
                    "auditlogentry_ptr",
                    models.OneToOneField(
                        auto_created=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        parent_link=True,
                        primary_key=True,
                        serialize=False,
                        to="audit.auditlogentry",
                    ),
                ),
                (
                    "classification",
                    models.CharField(
                        choices=[
                            ("UNAUTHORIZED_ACCESS", "Unauthorized Access"),
                            ("REPEATED_AUTH_FAILURE", "Repeated Auth Failure"),
                            ("PERMISSION_DENIED", "Permission Denied"),
                            ("PRIVILEGE_ESCALATION", "Privilege Escalation"),
                            ("ROLE_MANIPULATION", "Role Manipulation"),
                            ("SELF_MODIFICATION", "Self Modification"),
                            ("RATE_LIMITED", "Rate Limited"),
                            ("DATA_EXPORT", "Data Export"),
                            ("ROLE_ESCALATION", "Role Escalation"),
                            ("SUSPICIOUS_ACTIVITY", "Suspicious Activity"),
                        ],
                        db_index=True,
                        max_length=40,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "-id"],
            },
            bases=("audit.auditlogentry",),
        ),
        migrations.CreateModel(
            name="RoleChangeHistory",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("user_id", models.CharField(db_index=True, max_length=64)),
                ("old_role", models.CharField(max_length=20)),
                ("new_role", models.CharField(max_length=20)),
                ("changed_by", models.CharField(max_length=64)),
                ("reason", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                (
                    "audit_entry",
                    models.ForeignKey(
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="role_changes",
                        to="audit.auditlogentry",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "verbose_name_plural": "role change history",
            },
        ),
    ]
