"""
Inventory hold and listing calls for the SmartPass API.

A *hold* is a time-boxed reservation of a pass returned by
``/api/inventory-holds``; every purchase references one.  Each function
here issues exactly one request through the Locust session, validates
the response shape with ``catch_response=True`` and returns the response
so the caller decides what happens next.  Nothing is retried.

Key Concepts Demonstrated:
- In-band response validation that marks failed checks in Locust stats
- Stable request names (``CreateInventoryHold`` ...) so statistics group
  per operation instead of per URL
- Parsing into an immutable :class:`Hold`, or ``None``, never a
  partially-populated object
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING, Any

from smartpass_load.decoding import decode_json, decode_object

if TYPE_CHECKING:
    from locust.clients import HttpSession

logger = logging.getLogger(__name__)


class ProductType(IntEnum):
    """Product discriminator sent with hold requests."""

    EVENT_PASS = 0
    SEASON_PASS = 1


@dataclass(frozen=True)
class Hold:
    """
    A successfully created inventory hold.

    Attributes:
        hold_id: Server-assigned hold identifier.
        expiry: Expiry timestamp exactly as the server sent it.
        amount: Amount to charge in cents, if the server returned one.
        product_type: Product discriminator echoed by the server.
    """

    hold_id: str
    expiry: Any
    amount: int | None = None
    product_type: int | None = None

    @property
    def cart_id(self) -> str:
        """Season-pass purchases call the hold a cart."""
        return self.hold_id


def create_inventory_hold(client: HttpSession, headers: dict[str, str], payload: dict[str, Any]):
    """
    Create an inventory hold (cart) for a listing.

    Args:
        client: The Locust HTTP session.
        headers: Request headers (Basic-Auth + JSON).
        payload: Hold creation payload, see
            :func:`create_event_pass_hold_payload`.

    Returns:
        The response; a 200 whose body carries ``holdId`` and ``expiry``
        is recorded as a success.
    """
    with client.post(
        "/api/inventory-holds",
        json=payload,
        headers=headers,
        name="CreateInventoryHold",
        catch_response=True,
    ) as response:
        if response.status_code != 200:
            response.failure(f"Expected 200, got {response.status_code}")
            return response

        body = decode_object(response)
        if not body.has("holdId"):
            response.failure("Create hold response missing holdId")
            return response
        if not body.has("expiry"):
            response.failure("Create hold response missing expiry")
            return response

        response.success()
        return response


def extend_inventory_hold(client: HttpSession, headers: dict[str, str], payload: dict[str, Any]):
    """Extend an existing hold; success is a plain 200."""
    return _post_expecting_ok(
        client, "/api/inventory-holds/extend", headers, payload, name="ExtendInventoryHold"
    )


def remove_inventory_hold(client: HttpSession, headers: dict[str, str], payload: dict[str, Any]):
    """Release an existing hold; success is a plain 200."""
    return _post_expecting_ok(
        client, "/api/inventory-holds/remove", headers, payload, name="RemoveInventoryHold"
    )


def get_season_pass_listings(
    client: HttpSession,
    headers: dict[str, str],
    client_org_key: str,
    landmark_id: str | None = None,
):
    """
    List the season passes a client organization sells.

    Args:
        client: The Locust HTTP session.
        headers: Request headers.
        client_org_key: Client organization key.
        landmark_id: Optional landmark filter.

    Returns:
        The response; expected to be a 200 with a JSON array body.
    """
    params = {"clientOrgKey": client_org_key}
    if landmark_id:
        params["landmarkId"] = landmark_id

    with client.get(
        "/api/seasonpass",
        params=params,
        headers=headers,
        name="GetSeasonPassListings",
        catch_response=True,
    ) as response:
        if response.status_code != 200:
            response.failure(f"Expected 200, got {response.status_code}")
            return response

        body = decode_json(response)
        if not body.ok or not isinstance(body.value, list):
            response.failure("Listings response is not a JSON array")
            return response

        response.success()
        return response


def get_season_pass_listing(
    client: HttpSession,
    headers: dict[str, str],
    listing_id: str,
    landmark_id: str,
):
    """Fetch one season-pass listing; expected to be a 200 carrying ``id``."""
    with client.get(
        f"/api/seasonpass/{listing_id}",
        params={"landmarkId": landmark_id},
        headers=headers,
        name="GetSeasonPassListing",
        catch_response=True,
    ) as response:
        if response.status_code != 200:
            response.failure(f"Expected 200, got {response.status_code}")
            return response

        if not decode_object(response).has("id"):
            response.failure("Listing response missing id")
            return response

        response.success()
        return response


def create_event_pass_hold_payload(listing_id: str, pricing_id: str) -> dict[str, Any]:
    """Build a hold payload for an event pass."""
    return _hold_payload(ProductType.EVENT_PASS, listing_id, pricing_id)


def create_season_pass_hold_payload(listing_id: str, pricing_id: str) -> dict[str, Any]:
    """Build a hold payload for a season pass."""
    return _hold_payload(ProductType.SEASON_PASS, listing_id, pricing_id)


def create_hold_payload(product_type: int, listing_id: str, pricing_id: str) -> dict[str, Any]:
    """Build the hold payload matching *product_type* (0 event pass, 1 season pass)."""
    if ProductType(product_type) is ProductType.EVENT_PASS:
        return create_event_pass_hold_payload(listing_id, pricing_id)
    return create_season_pass_hold_payload(listing_id, pricing_id)


def parse_hold_response(response: Any) -> Hold | None:
    """
    Turn a create-hold response into a :class:`Hold`.

    Args:
        response: The response returned by :func:`create_inventory_hold`.

    Returns:
        The parsed hold, or ``None`` when the status is not 200, the body
        is not a JSON object, or ``holdId``/``expiry`` is missing.
    """
    if response.status_code != 200:
        return None

    body = decode_object(response)
    if not body.ok:
        logger.warning("Hold response could not be decoded: %s", body.error)
        return None
    if not body.has("holdId") or not body.has("expiry"):
        logger.warning("Hold response missing holdId or expiry")
        return None

    return Hold(
        hold_id=body.get("holdId"),
        expiry=body.get("expiry"),
        amount=body.get("amount"),
        product_type=body.get("productType"),
    )


def _hold_payload(product_type: ProductType, listing_id: str, pricing_id: str) -> dict[str, Any]:
    return {
        "productType": int(product_type),
        "listingId": listing_id,
        "pricingId": pricing_id,
    }


def _post_expecting_ok(
    client: HttpSession,
    path: str,
    headers: dict[str, str],
    payload: dict[str, Any],
    *,
    name: str,
):
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

        response.success()
        return response
