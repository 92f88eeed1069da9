"""
Notifications app for external notification delivery.

This app provides:
- NovuAdapter: httpx client for the Novu workflow trigger API
- NotificationService: best-effort dispatch returning ServiceResult
- Workflows: identifiers of the workflows the settlement pipeline triggers

Usage:
    from notifications.services import NotificationService, Workflows

    result = NotificationService.notify_user(
        Workflows.PAYOUT_FAILED,
        user=expert,
        payload={"reason": "No available balance"},
    )

    if result.success:
        ...
"""
