import logging

import httpx

from stockledger.config import settings
from stockledger.services.movements import Movement

logger = logging.getLogger(__name__)


def _build_payload(event: str, movement: Movement) -> dict:
    m = movement.meta
    return {
        "event": event,
        "movement": {
            "id": movement.id,
            "type": movement.type,
            "quantity": movement.quantity,
            "category": m.category if m else "",
            "item_name": m.item_name if m else "",
            "serial_number": (m.serial_number or "") if m else "",
            "location": m.location if m else "",
            "reason_type": m.reason_type.value if m and m.reason_type else "",
            "to_location": (m.to_location or "") if m else "",
            "approval_status": movement.approval_status.value if movement.approval_status else "",
            "approved_by": (m.approved_by or "") if m else "",
            "created_by": (m.created_by or "") if m else "",
        },
    }


def _webhook_urls() -> list[str]:
    if not settings.WEBHOOK_URLS:
        return []
    return [u.strip() for u in settings.WEBHOOK_URLS.split(",") if u.strip()]


def send_webhook_sync(event: str, movement: Movement, transport: httpx.BaseTransport | None = None) -> list[dict]:
    """Notify every configured URL. Delivery failures are logged, never raised."""
    urls = _webhook_urls()
    if not urls:
        return []

    payload = _build_payload(event, movement)
    results = []

    with httpx.Client(timeout=10.0, transport=transport) as client:
        for url in urls:
            try:
                resp = client.post(url, json=payload)
                results.append({"url": url, "status": resp.status_code, "success": resp.is_success})
            except Exception as e:
                logger.error("Webhook failed for %s: %s", url, e)
                results.append({"url": url, "status": 0, "success": False, "error": str(e)})

    return results
