"""
Client for the external production tracking system.

Stage and ship-date changes made in the portal are pushed to the
production floor's system so both sides agree on where an order is.
All calls are best effort: failures come back as ProductionSyncResult
values (or None/False) instead of exceptions.
"""
import logging
from datetime import datetime
from typing import Optional

import requests
from django.conf import settings

from .dtos import ProductionSyncResult

logger = logging.getLogger(__name__)

USER_AGENT = "ColorGarb-OrderSystem/1.0"

# Transient upstream failures worth retrying
RETRYABLE_STATUS_CODES = {408, 500, 502, 503, 504}


class ProductionTrackingService:
    """
    Thin HTTP client over the production tracking REST API.

    Configuration comes from settings.PRODUCTION_TRACKING unless
    explicit values are passed (tests and one-off scripts).
    """

    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None,
                 timeout: Optional[int] = None, enabled: Optional[bool] = None, session=None):
        config = getattr(settings, 'PRODUCTION_TRACKING', {})
        self.base_url = (base_url if base_url is not None else config.get('BASE_URL', '')).rstrip('/')
        self.api_key = api_key if api_key is not None else config.get('API_KEY', '')
        self.timeout = timeout if timeout is not None else config.get('TIMEOUT_SECONDS', 30)
        self.enabled = enabled if enabled is not None else config.get('ENABLED', False)
        self.session = session or requests.Session()

    @property
    def is_configured(self) -> bool:
        return bool(self.enabled and self.base_url)

    def _headers(self) -> dict:
        headers = {
            'Content-Type': 'application/json',
            'User-Agent': USER_AGENT,
        }
        if self.api_key:
            headers['X-API-Key'] = self.api_key
        return headers

    def _post(self, path: str, payload: dict, order_id) -> ProductionSyncResult:
        if not self.is_configured:
            logger.debug(f"Production tracking disabled; skipping {path} for order {order_id}")
            return ProductionSyncResult(success=True)

        url = f"{self.base_url}{path}"
        try:
            response = self.session.post(url, json=payload, headers=self._headers(), timeout=self.timeout)
        except requests.exceptions.Timeout:
            logger.warning(f"Production tracking timed out for order {order_id} ({path})")
            return ProductionSyncResult(success=False, error="Request timed out", should_retry=True)
        except requests.exceptions.RequestException as e:
            logger.warning(f"Production tracking request failed for order {order_id}: {e}")
            return ProductionSyncResult(success=False, error=f"Network error: {e}", should_retry=True)

        if response.ok:
            external_id = None
            try:
                body = response.json()
                external_id = body.get('externalOrderId') or body.get('external_order_id')
            except ValueError:
                pass  # Empty or non-JSON success body
            logger.info(f"Synced order {order_id} to production tracking ({path})")
            return ProductionSyncResult(success=True, external_order_id=external_id)

        should_retry = response.status_code in RETRYABLE_STATUS_CODES
        logger.warning(
            f"Production tracking returned {response.status_code} for order {order_id} "
            f"({path}); retryable={should_retry}"
        )
        return ProductionSyncResult(
            success=False,
            error=f"HTTP {response.status_code}: {response.text[:500]}",
            should_retry=should_retry,
        )

    def sync_stage_update(self, order_id, order_number: str, previous_stage: str,
                          new_stage: str, updated_by: str, reason: str = "") -> ProductionSyncResult:
        return self._post("/api/orders/stage-update", {
            'orderId': str(order_id),
            'orderNumber': order_number,
            'previousStage': previous_stage,
            'newStage': new_stage,
            'updatedBy': updated_by,
            'reason': reason,
        }, order_id)

    def sync_ship_date_update(self, order_id, order_number: str, previous_ship_date: datetime,
                              new_ship_date: datetime, reason: str, updated_by: str) -> ProductionSyncResult:
        return self._post("/api/orders/ship-date-update", {
            'orderId': str(order_id),
            'orderNumber': order_number,
            'previousShipDate': previous_ship_date.isoformat(),
            'newShipDate': new_ship_date.isoformat(),
            'reason': reason,
            'updatedBy': updated_by,
        }, order_id)

    def check_health(self) -> bool:
        if not self.is_configured:
            return False
        try:
            response = self.session.get(
                f"{self.base_url}/api/health", headers=self._headers(), timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            logger.warning(f"Production tracking health check failed: {e}")
            return False
        return response.ok

    def get_external_status(self, order_id) -> Optional[dict]:
        """Current status as the production system sees it; None when unknown there."""
        if not self.is_configured:
            return None
        try:
            response = self.session.get(
                f"{self.base_url}/api/orders/{order_id}/status",
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.warning(f"Production status lookup failed for order {order_id}: {e}")
            return None

        if response.status_code == 404 or not response.ok:
            return None
        try:
            return response.json()
        except ValueError:
            logger.warning(f"Production status for order {order_id} was not JSON")
            return None
