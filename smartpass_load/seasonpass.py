"""Season-pass purchase calls and flow."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from smartpass_load.flow import PurchaseFlow
from smartpass_load.payments import post_purchase, post_purchase_completion

if TYPE_CHECKING:
    from locust.clients import HttpSession

    from smartpass_load.inventory import Hold
    from smartpass_load.payments import PurchaseData


def purchase_season_pass(client: HttpSession, headers: dict[str, str], payload: dict[str, Any]):
    """Purchase a season pass; 200 or 202 with a non-empty body is a success."""
    return post_purchase(
        client,
        "/api/listings/seasonpass/purchase",
        headers,
        payload,
        name="PurchaseSeasonPass",
    )


def complete_season_pass_purchase(
    client: HttpSession, headers: dict[str, str], payload: dict[str, Any]
):
    """Complete a season-pass purchase; expects the package ``id``."""
    return post_purchase_completion(
        client,
        "/api/listings/seasonpass/purchase-complete",
        headers,
        payload,
        name="CompleteSeasonPassPurchase",
        missing_message="Complete season pass purchase response missing package id",
    )


def build_season_pass_purchase_payload(hold: Hold, purchase_data: PurchaseData) -> dict[str, Any]:
    """
    Combine a hold and purchase data into a season-pass purchase payload.

    Season passes are priced per tier, so the payload carries the
    pricing id and refers to the hold as the cart.  There are no
    per-listing customer fields; an optional access code unlocks
    restricted tiers instead.
    """
    return {
        "listingId": purchase_data.listing_id,
        "pricingId": purchase_data.pricing_id,
        "cartIdentifier": hold.cart_id,
        "amount": hold.amount,
        "paymentToken": purchase_data.payment_token,
        "name": purchase_data.name,
        "email": purchase_data.email,
        "licensePlateNumber": purchase_data.license_plate_number or "",
        "licensePlateState": purchase_data.license_plate_state or "",
        "token": purchase_data.recaptcha_token or "",
        "accessCode": purchase_data.access_code or "",
    }


SEASON_PASS_FLOW = PurchaseFlow(
    name="season pass",
    submit=purchase_season_pass,
    complete=complete_season_pass_purchase,
    build_payload=build_season_pass_purchase_payload,
)


def full_season_pass_flow(
    client: HttpSession,
    headers: dict[str, str],
    hold: Hold,
    purchase_data: PurchaseData,
):
    """Buy a season pass against *hold* and return the terminal response."""
    return SEASON_PASS_FLOW.run(client, headers, hold, purchase_data)
