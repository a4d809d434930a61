"""
Payment provider capability.

Only the operations the credit ledger needs are exposed: creating a customer
reference and a setup intent for saving a payment method for off-session
charges, and reading back the payment method a finished setup saved.
"""
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional
import stripe
from crm.core.config import settings
from crm.core.exceptions import Unavailable
from crm.core.logging_config import logger


@dataclass
class SetupIntentResult:
    setup_intent_id: str
    client_secret: str
    customer_ref: Optional[str]


@dataclass
class SetupIntentStatus:
    setup_intent_id: str
    status: str
    payment_method_ref: Optional[str]


class PaymentProvider:
    def create_setup_intent(
        self,
        *,
        customer_ref: Optional[str],
        customer_email: Optional[str],
        metadata: Dict[str, str]
    ) -> SetupIntentResult:
        raise NotImplementedError

    def get_setup_intent(self, setup_intent_id: str) -> SetupIntentStatus:
        raise NotImplementedError


class StripePaymentProvider(PaymentProvider):
    def __init__(self, api_key: str, max_network_retries: int = 2):
        self.client = stripe.StripeClient(api_key, max_network_retries=max_network_retries)

    def create_setup_intent(
        self,
        *,
        customer_ref: Optional[str],
        customer_email: Optional[str],
        metadata: Dict[str, str]
    ) -> SetupIntentResult:
        try:
            if customer_ref is None and customer_email:
                customer = self.client.customers.create(params={
                    "email": customer_email,
                    "metadata": metadata,
                })
                customer_ref = customer.id

            params = {"usage": "off_session", "metadata": metadata}
            if customer_ref:
                params["customer"] = customer_ref
            intent = self.client.setup_intents.create(params=params)
        except stripe.StripeError as e:
            logger.error(f"Stripe setup intent failed: {type(e).__name__}: {str(e)}")
            raise Unavailable("Payment provider unavailable")

        return SetupIntentResult(
            setup_intent_id=intent.id,
            client_secret=intent.client_secret,
            customer_ref=customer_ref,
        )

    def get_setup_intent(self, setup_intent_id: str) -> SetupIntentStatus:
        try:
            intent = self.client.setup_intents.retrieve(setup_intent_id)
        except stripe.StripeError as e:
            logger.error(f"Stripe setup intent lookup failed: {type(e).__name__}: {str(e)}")
            raise Unavailable("Payment provider unavailable")

        payment_method = intent.payment_method
        if payment_method is not None and not isinstance(payment_method, str):
            payment_method = payment_method.id
        return SetupIntentStatus(
            setup_intent_id=intent.id,
            status=intent.status,
            payment_method_ref=payment_method,
        )


@dataclass
class InMemoryPaymentProvider(PaymentProvider):
    """Records setup intents instead of calling a provider."""

    intents: List[Dict[str, object]] = field(default_factory=list)

    def create_setup_intent(
        self,
        *,
        customer_ref: Optional[str],
        customer_email: Optional[str],
        metadata: Dict[str, str]
    ) -> SetupIntentResult:
        if customer_ref is None and customer_email:
            customer_ref = f"cus_{uuid.uuid4().hex[:14]}"
        intent_id = f"seti_{uuid.uuid4().hex[:24]}"
        self.intents.append({
            "id": intent_id,
            "customer": customer_ref,
            "metadata": dict(metadata),
            "status": "requires_payment_method",
            "payment_method": None,
        })
        return SetupIntentResult(
            setup_intent_id=intent_id,
            client_secret=f"{intent_id}_secret_{uuid.uuid4().hex[:12]}",
            customer_ref=customer_ref,
        )

    def _find(self, setup_intent_id: str) -> Dict[str, object]:
        for intent in self.intents:
            if intent["id"] == setup_intent_id:
                return intent
        raise Unavailable("Unknown setup intent")

    def complete(self, setup_intent_id: str, payment_method: str) -> None:
        """Mark an intent as finished by the customer, as the provider would."""
        intent = self._find(setup_intent_id)
        intent["status"] = "succeeded"
        intent["payment_method"] = payment_method

    def get_setup_intent(self, setup_intent_id: str) -> SetupIntentStatus:
        intent = self._find(setup_intent_id)
        return SetupIntentStatus(
            setup_intent_id=setup_intent_id,
            status=intent["status"],
            payment_method_ref=intent["payment_method"],
        )


_provider: Optional[PaymentProvider] = None


def get_payment_provider() -> PaymentProvider:
    global _provider
    if _provider is None:
        if not settings.STRIPE_SECRET_KEY:
            raise Unavailable("Payment provider not configured")
        _provider = StripePaymentProvider(settings.STRIPE_SECRET_KEY)
    return _provider
