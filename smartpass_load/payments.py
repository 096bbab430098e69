"""
Payment calls and the event-pass purchase flow.

Wraps the ``/api/pass/*``, ``/api/merchant`` and payment-split
endpoints.  Like :mod:`smartpass_load.inventory`, every function issues
one request with ``catch_response=True``, validates the response shape,
and hands the response back to the caller.

Key Concepts Demonstrated:
- Purchase payloads built fresh per iteration from a hold and
  :class:`PurchaseData`
- The event-pass flow as a :class:`~smartpass_load.flow.PurchaseFlow`
  instance rather than a copy of the challenge-handling logic
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from smartpass_load.decoding import decode_object
from smartpass_load.flow import (
    ACCEPTED_PURCHASE_STATUSES,
    PurchaseFlow,
    submit_then_maybe_complete,
)

if TYPE_CHECKING:
    from locust.clients import HttpSession

    from smartpass_load.inventory import Hold

# Stripe test token that always authorises.
TEST_PAYMENT_TOKEN = "tok_visa"


@dataclass(frozen=True)
class PurchaseData:
    """
    Caller-supplied fields of a purchase.

    Optional fields default to ``""`` because the API expects the keys to
    be present even when blank.
    """

    listing_id: str
    payment_token: str
    name: str
    email: str
    client_organization_key: str = ""
    pricing_id: str = ""
    license_plate_number: str = ""
    license_plate_state: str = ""
    recaptcha_token: str = ""
    external_reference_code: str = ""
    marketplace: str = ""
    access_code: str = ""


def generate_purchase_token(client: HttpSession, headers: dict[str, str], payload: dict[str, Any]):
    """Request a purchase token for the hosted payment flow; expects ``token``."""
    with client.post(
        "/api/pass/generate-purchase-token",
        json=payload,
        headers=headers,
        name="GeneratePurchaseToken",
        catch_response=True,
    ) as response:
        if response.status_code != 200:
            response.failure(f"Expected 200, got {response.status_code}")
            return response

        if not decode_object(response).has("token"):
            response.failure("Generate token response missing token")
            return response

        response.success()
        return response


def purchase_pass(client: HttpSession, headers: dict[str, str], payload: dict[str, Any]):
    """
    Purchase a pass with direct payment.

    Returns:
        The response.  200 means settled, 202 means the payment may
        still need completing; both count as success when the body is
        not empty.
    """
    return post_purchase(client, "/api/pass/purchase", headers, payload, name="PurchasePass")


def complete_purchase(client: HttpSession, headers: dict[str, str], payload: dict[str, Any]):
    """Complete a purchase after the payment challenge; expects the pass ``id``."""
    return post_purchase_completion(
        client,
        "/api/pass/purchase-complete",
        headers,
        payload,
        name="CompletePurchase",
        missing_message="Complete purchase response missing pass id",
    )


def get_payment_account(client: HttpSession, headers: dict[str, str], client_org_key: str):
    """Look up the merchant payment account of a client organization."""
    with client.post(
        "/api/merchant",
        json={"clientOrganizationKey": client_org_key},
        headers=headers,
        name="GetPaymentAccount",
        catch_response=True,
    ) as response:
        if response.status_code != 200:
            response.failure(f"Expected 200, got {response.status_code}")
            return response

        if not decode_object(response).has("id"):
            response.failure("Payment account response missing id")
            return response

        response.success()
        return response


def get_payment_splits(
    client: HttpSession,
    headers: dict[str, str],
    lot_id: str,
    landmark_id: str,
    base_amount: int | None = None,
):
    """
    Fetch the payment splits configured for a lot and landmark.

    Args:
        client: The Locust HTTP session.
        headers: Request headers.
        lot_id: Lot identifier.
        landmark_id: Landmark identifier.
        base_amount: Optional base amount (cents) to compute the split for.

    Returns:
        The response; expected to be a 200 carrying ``providers``.
    """
    params = {"baseAmount": base_amount} if base_amount else None

    with client.get(
        f"/api/lot/{lot_id}/landmark/{landmark_id}/payment-splits",
        params=params,
        headers=headers,
        name="GetPaymentSplits",
        catch_response=True,
    ) as response:
        if response.status_code != 200:
            response.failure(f"Expected 200, got {response.status_code}")
            return response

        if not decode_object(response).has("providers"):
            response.failure("Payment splits response missing providers")
            return response

        response.success()
        return response


def create_test_payment_token() -> str:
    """
    Return a payment token usable against test environments.

    A real browser flow would tokenise a card with the payment provider;
    under load we reuse the provider's always-succeeding test token.
    """
    return TEST_PAYMENT_TOKEN


def build_event_pass_purchase_payload(hold: Hold, purchase_data: PurchaseData) -> dict[str, Any]:
    """Combine a hold and purchase data into an event-pass purchase payload."""
    return {
        "amount": hold.amount,
        "listingId": purchase_data.listing_id,
        "holdId": hold.hold_id,
        "paymentToken": purchase_data.payment_token,
        "name": purchase_data.name,
        "email": purchase_data.email,
        "licensePlateNumber": purchase_data.license_plate_number or "",
        "licensePlateState": purchase_data.license_plate_state or "",
        "token": purchase_data.recaptcha_token or "",
        "clientOrganizationKey": purchase_data.client_organization_key,
        "externalReferenceCode": purchase_data.external_reference_code or "",
        "marketplace": purchase_data.marketplace or "",
    }


EVENT_PASS_FLOW = PurchaseFlow(
    name="event pass",
    submit=purchase_pass,
    complete=complete_purchase,
    build_payload=build_event_pass_purchase_payload,
)


def full_payment_flow(client: HttpSession, headers: dict[str, str], purchase_payload: dict[str, Any]):
    """Purchase with an already-built payload, completing the payment if required."""
    return submit_then_maybe_complete(
        client,
        headers,
        purchase_payload,
        submit=purchase_pass,
        complete=complete_purchase,
    )


def full_event_pass_flow(
    client: HttpSession,
    headers: dict[str, str],
    hold: Hold,
    purchase_data: PurchaseData,
):
    """Buy an event pass against *hold* and return the terminal response."""
    return EVENT_PASS_FLOW.run(client, headers, hold, purchase_data)


def post_purchase(
    client: HttpSession,
    path: str,
    headers: dict[str, str],
    payload: dict[str, Any],
    *,
    name: str,
):
    """POST a purchase payload; 200 or 202 with a non-empty body passes."""
    with client.post(
        path,
        json=payload,
        headers=headers,
        name=name,
        catch_response=True,
    ) as response:
        if response.status_code not in ACCEPTED_PURCHASE_STATUSES:
            response.failure(f"Expected 200 or 202, got {response.status_code}")
            return response

        if not response.content:
            response.failure("Purchase response body is empty")
            return response

        response.success()
        return response


def post_purchase_completion(
    client: HttpSession,
    path: str,
    headers: dict[str, str],
    payload: dict[str, Any],
    *,
    name: str,
    missing_message: str,
):
    """POST a completion payload; 200 carrying the created ``id`` passes."""
    with client.post(
        path,
        json=payload,
        headers=headers,
        name=name,
        catch_response=True,
    ) as response:
        if response.status_code != 200:
            response.failure(f"Expected 200, got {response.status_code}")
            return response

        if not decode_object(response).has("id"):
            response.failure(missing_message)
            return response

        response.success()
        return response
