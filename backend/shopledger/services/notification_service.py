from __future__ import annotations

from flask import current_app


def notify_order_created(order: dict) -> bool:
    """
    Hand a freshly committed order to the configured ORDER_NOTIFIER.

    Best effort: the order is already committed, so a failing notifier is
    logged and swallowed. Returns True when the notifier ran cleanly.
    """
    notifier = current_app.config.get("ORDER_NOTIFIER")
    if notifier is None:
        current_app.logger.info("Order %s created (no notifier configured)", order.get("code"))
        return False

    try:
        notifier(order)
    except Exception:
        current_app.logger.warning(
            "Order notification failed for %s", order.get("code"), exc_info=True
        )
        return False
    return True
