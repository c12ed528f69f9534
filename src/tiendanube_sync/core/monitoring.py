"""
GlitchTip Error Monitoring Utilities

Initialization and context helpers for error tracking.
"""

import logging
from typing import Any, Dict, Optional

from tiendanube_sync.core.logger import setup_logger

logger = setup_logger(__name__)


def init_monitoring(dsn: Optional[str], environment: str) -> bool:
    """
    Initialize GlitchTip (Sentry-compatible) monitoring when a DSN is configured.

    Returns:
        True if monitoring was initialized
    """
    if not dsn:
        return False

    try:
        import sentry_sdk
        from sentry_sdk.integrations.fastapi import FastApiIntegration
        from sentry_sdk.integrations.logging import LoggingIntegration

        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                LoggingIntegration(level=None, event_level=logging.ERROR),
            ],
            traces_sample_rate=0.1,
            send_default_pii=False,
        )
        logger.info("GlitchTip error monitoring initialized")
        return True
    except Exception as e:
        logger.error(f"Failed to initialize GlitchTip: {e}")
        return False


def set_webhook_context(
    event: str,
    store_id: Optional[int] = None,
    resource_id: Optional[int] = None,
    **extra_tags
) -> None:
    """
    Set webhook-specific context for error tracking.

    Args:
        event: Tiendanube event name (e.g. "product/updated")
        store_id: Store ID
        resource_id: Product/order ID
        **extra_tags: Additional tags to add
    """
    try:
        import sentry_sdk

        sentry_sdk.set_tag("webhook.event", event)
        if store_id:
            sentry_sdk.set_tag("webhook.store_id", store_id)
        if resource_id:
            sentry_sdk.set_tag("webhook.resource_id", resource_id)

        for key, value in extra_tags.items():
            sentry_sdk.set_tag(key, value)

        context_data = {"event": event, "store_id": store_id, "resource_id": resource_id}
        context_data.update(extra_tags)
        sentry_sdk.set_context("webhook", context_data)

    except ImportError:
        pass  # Sentry not installed
    except Exception as e:
        logger.warning(f"Failed to set webhook context: {e}")


def capture_exception(
    error: Exception,
    context: Optional[Dict[str, Any]] = None,
    level: str = "error"
) -> None:
    """
    Capture an exception and send to GlitchTip.

    Args:
        error: The exception to capture
        context: Additional context data
        level: Error level (error, warning, info)
    """
    try:
        import sentry_sdk

        if context:
            with sentry_sdk.new_scope() as scope:
                scope.set_context("custom", context)
                scope.set_level(level)
                sentry_sdk.capture_exception(error)
        else:
            sentry_sdk.capture_exception(error)

    except ImportError:
        pass  # Sentry not installed
    except Exception as e:
        logger.warning(f"Failed to capture exception in GlitchTip: {e}")
