import logging
from typing import Optional

import httpx

from ..config import Settings
from ..errors import GatewayError

logger = logging.getLogger(__name__)


class RazorpayClient:
    """Thin async client for the Razorpay Orders API.

    One instance is created at startup and shared by every request.
    """

    def __init__(self,
                 key_id: str,
                 key_secret: str,
                 base_url: str = "https://api.razorpay.com/v1",
                 timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 ):
        self._client = httpx.AsyncClient(
            base_url=base_url,
            auth=(key_id, key_secret),
            timeout=timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "RazorpayClient":
        return cls(
            key_id=settings.razorpay_key_id.get_secret_value(),
            key_secret=settings.razorpay_key_secret.get_secret_value(),
            base_url=settings.razorpay_api_base,
            timeout=settings.gateway_timeout,
            **kwargs,
        )

    async def create_order(self, amount: int, currency: str, receipt: str, notes: dict) -> dict:
        """
        Create a Razorpay order for `amount` minor units and return its JSON.
        Raises GatewayError with a user-safe description on any failure.
        """
        payload = {
            "amount": amount,
            "currency": currency,
            "receipt": receipt,
            "notes": notes,
        }
        try:
            resp = await self._client.post("/orders", json=payload)
        except httpx.TimeoutException:
            logger.warning("Razorpay order creation timed out (receipt=%s)", receipt)
            raise GatewayError("Payment gateway timed out")
        except httpx.HTTPError as e:
            logger.warning("Razorpay order creation failed (receipt=%s): %s", receipt, type(e).__name__)
            raise GatewayError("Payment gateway unavailable")

        if resp.is_error:
            description = _error_description(resp)
            logger.warning("Razorpay rejected order (receipt=%s, status=%s): %s",
                           receipt, resp.status_code, description)
            raise GatewayError(description)

        try:
            return resp.json()
        except ValueError:
            raise GatewayError("Payment gateway returned an invalid response")

    async def aclose(self):
        await self._client.aclose()


def _error_description(resp: httpx.Response) -> str:
    try:
        description = resp.json().get("error", {}).get("description")
    except (ValueError, AttributeError):
        description = None
    return description or "Payment gateway error"
