"""
Submit-then-maybe-complete purchase primitive.

Both product lines buy the same way: submit a purchase, and if the
payment provider answers ``requires_action`` (a 3-D Secure style
challenge) send a completion call carrying the payment intent.  The
transition logic lives here once; the event-pass and season-pass flows
are :class:`PurchaseFlow` instances that differ only in their endpoint
calls and payload builder.

Transitions of :func:`submit_then_maybe_complete`:

- submit status not 200/202  -> submit response (terminal failure)
- body does not decode       -> submit response (treated as settled)
- ``status == requires_action`` with ``paymentIntent``
                             -> completion response
- anything else              -> submit response (already settled)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

from smartpass_load.decoding import decode_object

if TYPE_CHECKING:
    from locust.clients import HttpSession

    from smartpass_load.inventory import Hold
    from smartpass_load.payments import PurchaseData

logger = logging.getLogger(__name__)

REQUIRES_ACTION = "requires_action"
ACCEPTED_PURCHASE_STATUSES = (200, 202)

RequestCall = Callable[["HttpSession", dict[str, str], dict[str, Any]], Any]
PayloadBuilder = Callable[["Hold", "PurchaseData"], dict[str, Any]]


def pending_payment_intent(response: Any) -> str | None:
    """
    Return the payment intent a purchase response is waiting on.

    Args:
        response: A purchase response with status 200 or 202.

    Returns:
        The ``paymentIntent`` when the body is a JSON object whose
        ``status`` is ``requires_action``; ``None`` otherwise, including
        when the body cannot be decoded.
    """
    body = decode_object(response)
    if not body.ok:
        logger.warning("Purchase response body not decodable (%s); treating as settled", body.error)
        return None
    if body.get("status") != REQUIRES_ACTION:
        return None

    payment_intent = body.get("paymentIntent")
    if not payment_intent:
        logger.warning("Purchase requires action but carries no paymentIntent; treating as settled")
        return None
    return payment_intent


def submit_then_maybe_complete(
    client: HttpSession,
    headers: dict[str, str],
    payload: dict[str, Any],
    *,
    submit: RequestCall,
    complete: RequestCall,
):
    """Submit *payload* and complete the payment if a challenge is pending."""
    response = submit(client, headers, payload)
    if response.status_code not in ACCEPTED_PURCHASE_STATUSES:
        return response

    payment_intent = pending_payment_intent(response)
    if payment_intent is None:
        return response

    logger.info("Payment requires action, completing intent %s", payment_intent)
    return complete(client, headers, {"paymentId": payment_intent})


@dataclass(frozen=True)
class PurchaseFlow:
    """
    One product line's purchase sequence.

    Attributes:
        name: Label used in log lines.
        submit: Call that posts the purchase payload.
        complete: Call that posts ``{"paymentId": ...}`` to finish a
            pending payment.
        build_payload: Builds the purchase payload from a hold and the
            iteration's purchase data.
    """

    name: str
    submit: RequestCall
    complete: RequestCall
    build_payload: PayloadBuilder

    def run(
        self,
        client: HttpSession,
        headers: dict[str, str],
        hold: Hold,
        purchase_data: PurchaseData,
    ):
        """Buy against *hold* and return the terminal response."""
        payload = self.build_payload(hold, purchase_data)
        return submit_then_maybe_complete(
            client,
            headers,
            payload,
            submit=self.submit,
            complete=self.complete,
        )
