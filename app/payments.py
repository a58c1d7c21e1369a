# app/payments.py
import json
import logging
from typing import Any, Dict, Optional

import stripe

from .exceptions import ProviderError

logger = logging.getLogger(__name__)


def _to_plain(stripe_object) -> Dict[str, Any]:
    # StripeObject renders itself as JSON
    return json.loads(str(stripe_object))


class StripeGateway:
    """Thin wrapper over Stripe Checkout sessions; the secret key stays here."""

    def __init__(self, api_key: Optional[str], max_network_retries: int = 2) -> None:
        self.api_key = api_key
        stripe.max_network_retries = max_network_retries

    def _require_key(self) -> str:
        if not self.api_key:
            logger.error("❌ STRIPE_SECRET_KEY not configured")
            raise ProviderError("Payment system not configured")
        return self.api_key

    def create_checkout_session(self, **params) -> Dict[str, Any]:
        api_key = self._require_key()
        try:
            session = stripe.checkout.Session.create(api_key=api_key, **params)
        except stripe.StripeError as e:
            logger.error(f"❌ Stripe error creating session: {type(e).__name__}: {str(e)}")
            raise ProviderError(f"Stripe API error: {e.user_message or str(e)}") from e
        return _to_plain(session)

    def retrieve_checkout_session(self, session_id: str) -> Dict[str, Any]:
        api_key = self._require_key()
        try:
            session = stripe.checkout.Session.retrieve(session_id, api_key=api_key)
        except stripe.StripeError as e:
            logger.error(f"❌ Stripe error retrieving session {session_id}: {str(e)}")
            raise ProviderError(f"Failed to retrieve Stripe session: {e.user_message or str(e)}") from e
        return _to_plain(session)
