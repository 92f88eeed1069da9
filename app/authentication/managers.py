"""
Custom user manager for email-based users.

Experts and admins are created with email as the primary identifier. Most
experts sign in through the external identity provider and never get a
local password.
"""

from django.contrib.auth.models import BaseUserManager
from django.core.exceptions import ValidationError


class UserManager(BaseUserManager):
    """
    Manager for the email-keyed User model.

    Usage:
        expert = User.objects.create_user(
            email="expert@example.com",
            external_id="user_2abc",
            country="PT",
        )
        admin = User.objects.create_superuser(
            email="admin@example.com",
            password="adminpassword",
        )
    """

    def create_user(self, email, password=None, **extra_fields):
        """
        Create and save a user with the given email.

        Raises:
            ValueError: If email is not provided
        """
        if not email:
            raise ValueError("The Email field must be set")

        email = self.normalize_email(email)
        extra_fields.setdefault("is_staff", False)
        extra_fields.setdefault("is_superuser", False)

        user = self.model(email=email, **extra_fields)
        if password:
            user.set_password(password)
        else:
            # Identity-provider users authenticate externally
            user.set_unusable_password()

        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault("is_staff", True)
        extra_fields.setdefault("is_superuser", True)

        if extra_fields.get("is_staff") is not True:
            raise ValueError("Superuser must have is_staff=True.")
        if extra_fields.get("is_superuser") is not True:
            raise ValueError("Superuser must have is_superuser=True.")

        return self.create_user(email, password, **extra_fields)

    def get_by_external_id(self, external_id):
        """Return the user linked to an identity-provider id, or None."""
        if not external_id:
            return None
        return self.filter(external_id=external_id).first()

    def get_by_identifier(self, identifier):
        """
        Resolve a user id found in provider metadata.

        Tries the identity-provider id first, then the primary key.
        """
        user = self.get_by_external_id(identifier)
        if user is not None or not identifier:
            return user
        try:
            return self.filter(pk=identifier).first()
        except (ValueError, ValidationError):
            return None
