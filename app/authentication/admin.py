"""
Django admin configuration for authentication models.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from authentication.models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """
    Admin configuration for User model.

    Identity verification fields are read-only; they are written by the
    Stripe Identity webhook.
    """

    list_display = (
        "email",
        "external_id",
        "country",
        "identity_verified",
        "is_active",
        "is_staff",
        "date_joined",
    )
    list_filter = (
        "is_active",
        "is_staff",
        "identity_verified",
        "country",
    )
    search_fields = ("email", "external_id", "first_name", "last_name")
    ordering = ("-date_joined",)

    fieldsets = (
        (None, {"fields": ("email", "password", "external_id")}),
        ("Personal", {"fields": ("first_name", "last_name", "country")}),
        (
            "Identity verification",
            {
                "fields": (
                    "identity_verification_id",
                    "identity_verification_status",
                    "identity_verified",
                    "identity_verification_last_checked",
                    "setup_progress",
                )
            },
        ),
        (
            "Status",
            {"fields": ("is_active", "is_staff", "is_superuser", "groups", "user_permissions")},
        ),
        ("Important dates", {"fields": ("date_joined", "last_login")}),
    )

    add_fieldsets = (
        (
            None,
            {
                "classes": ("wide",),
                "fields": ("email", "password1", "password2"),
            },
        ),
    )

    readonly_fields = (
        "date_joined",
        "last_login",
        "identity_verification_id",
        "identity_verification_status",
        "identity_verified",
        "identity_verification_last_checked",
    )
