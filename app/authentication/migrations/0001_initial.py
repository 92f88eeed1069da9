import uuid

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("auth", "0012_alter_user_first_name_max_length"),
    ]

    operations = [
        migrations.CreateModel(
            name="User",
            fields=[
                ("password", models.CharField(max_length=128, verbose_name="password")),
                (
                    "last_login",
                    models.DateTimeField(blank=True, null=True, verbose_name="last login"),
                ),
                (
                    "is_superuser",
                    models.BooleanField(
                        default=False,
                        help_text="Designates that this user has all permissions without explicitly assigning them.",
                        verbose_name="superuser status",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "email",
                    models.EmailField(
                        db_index=True,
                        help_text="User's email address (primary identifier)",
                        max_length=254,
                        unique=True,
                    ),
                ),
                (
                    "external_id",
                    models.CharField(
                        blank=True,
                        help_text="Identity provider user ID",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                ("first_name", models.CharField(blank=True, default="", max_length=150)),
                ("last_name", models.CharField(blank=True, default="", max_length=150)),
                (
                    "country",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="ISO country code used to pick the payout delay",
                        max_length=2,
                    ),
                ),
                (
                    "timezone",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="IANA timezone of the expert's schedule",
                        max_length=64,
                    ),
                ),
                (
                    "identity_verification_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        help_text="Stripe Identity VerificationSession ID (vs_xxx)",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "identity_verification_status",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("requires_input", "Requires Input"),
                            ("processing", "Processing"),
                            ("verified", "Verified"),
                            ("canceled", "Canceled"),
                        ],
                        max_length=20,
                        null=True,
                    ),
                ),
                ("identity_verified", models.BooleanField(default=False)),
                (
                    "identity_verification_last_checked",
                    models.DateTimeField(blank=True, null=True),
                ),
                (
                    "setup_progress",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Expert onboarding steps, e.g. {'identity': true, 'payment': false}",
                    ),
                ),
                ("is_active", models.BooleanField(default=True)),
                (
                    "is_staff",
                    models.BooleanField(
                        default=False,
                        help_text="Whether the user can access the admin site.",
                    ),
                ),
                ("date_joined", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "groups",
                    models.ManyToManyField(
                        blank=True,
                        help_text="The groups this user belongs to. A user will get all permissions granted to each of their groups.",
                        related_name="user_set",
                        related_query_name="user",
                        to="auth.group",
                        verbose_name="groups",
                    ),
                ),
                (
                    "user_permissions",
                    models.ManyToManyField(
                        blank=True,
                        help_text="Specific permissions for this user.",
                        related_name="user_set",
                        related_query_name="user",
                        to="auth.permission",
                        verbose_name="user permissions",
                    ),
                ),
            ],
            options={
                "verbose_name": "user",
                "verbose_name_plural": "users",
                "ordering": ["-date_joined"],
            },
        ),
    ]
