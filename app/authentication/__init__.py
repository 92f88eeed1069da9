"""
Authentication application.

Holds the local User record for experts and staff. Sign-in is delegated to
the external identity provider; the settlement pipeline reads the user's
country and identity-provider id and writes identity verification status.

Usage:
    from authentication.models import User
"""
