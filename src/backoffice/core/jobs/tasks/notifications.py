"""Notification rule evaluation and webhook delivery."""

from typing import Any
from uuid import UUID

import httpx
import structlog
from arq import Retry

from backoffice.config import settings
from backoffice.core.jobs.utils import session_factory_from
from backoffice.modules.activities.models import Activity
from backoffice.modules.notifications.services import NotificationService


log = structlog.get_logger()

WEBHOOK_RETRY_BASE_SECONDS = 5


async def evaluate_notification_rules(ctx: dict[str, Any], activity_id: str) -> dict[str, Any]:
    """Evaluate every active rule against a freshly logged activity."""
    session_factory = session_factory_from(ctx)

    async with session_factory() as session:
        activity = await session.get(Activity, UUID(activity_id))
        if activity is None:
            log.warning("notification_activity_missing", activity_id=activity_id)
            return {"rules_fired": 0}
        fired = await NotificationService(session).evaluate(activity)
        await session.commit()

    return {"rules_fired": len(fired)}


async def deliver_webhook(ctx: dict[str, Any], url: str, payload: dict[str, Any]) -> int:
    """POST a notification payload to a webhook URL.

    Failed deliveries are retried with a growing delay until
    ``notification_webhook_retries`` attempts have been made.

    Returns:
        The HTTP status code of the successful delivery
    """
    attempt = ctx.get("job_try", 1)
    try:
        async with httpx.AsyncClient(timeout=settings.notification_webhook_timeout) as client:
            response = await client.post(url, json=payload)
            response.raise_for_status()
    except httpx.HTTPError as exc:
        log.warning("webhook_delivery_failed", url=url, attempt=attempt, error=str(exc))
        if attempt < settings.notification_webhook_retries:
            raise Retry(defer=attempt * WEBHOOK_RETRY_BASE_SECONDS) from exc
        raise

    log.info("webhook_delivered", url=url, status=response.status_code, attempt=attempt)
    return response.status_code
