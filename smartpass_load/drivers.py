"""
Iteration drivers for the load scenarios.

Each driver performs one virtual-user iteration: it builds the request
data, calls the clients/orchestrators in order, times them from the
outside and records the outcome into the run's
:class:`~smartpass_load.metrics.MetricRegistry`.  The virtual-user index
and iteration number arrive explicitly through :class:`IterationContext`
and are used both for log prefixes and for pseudo-unique customer data.
"""

from __future__ import annotations

import logging
import random
import string
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from smartpass_load.flow import ACCEPTED_PURCHASE_STATUSES, pending_payment_intent
from smartpass_load.inventory import (
    ProductType,
    create_hold_payload,
    create_inventory_hold,
    get_season_pass_listing,
    parse_hold_response,
)
from smartpass_load.payments import (
    EVENT_PASS_FLOW,
    PurchaseData,
    complete_purchase,
    purchase_pass,
)
from smartpass_load.seasonpass import SEASON_PASS_FLOW

if TYPE_CHECKING:
    from locust.clients import HttpSession

    from smartpass_load.config import Config
    from smartpass_load.metrics import MetricRegistry

logger = logging.getLogger(__name__)

# $15.00; the payment-only scenario buys against a pre-created hold.
DEFAULT_PAYMENT_AMOUNT = 1500


@dataclass(frozen=True)
class IterationContext:
    """Identity of one iteration: which virtual user, which repetition."""

    vu: int
    iteration: int

    @property
    def label(self) -> str:
        return f"VU {self.vu} Iter {self.iteration}"


def random_license_plate() -> str:
    """Random 7-character alphanumeric plate, so purchases do not collide."""
    return "".join(random.choices(string.ascii_uppercase + string.digits, k=7))


def build_purchase_data(config: type[Config], context: IterationContext) -> PurchaseData:
    """Purchase data for the complete-purchase scenario."""
    return PurchaseData(
        listing_id=config.TEST_LISTING_ID,
        pricing_id=config.TEST_PRICING_ID,
        payment_token=config.TEST_PAYMENT_TOKEN,
        name=f"Load Test User {context.vu}-{context.iteration}",
        email=f"loadtest-{context.vu}-{context.iteration}@example.com",
        license_plate_number=random_license_plate(),
        license_plate_state=config.TEST_LICENSE_PLATE_STATE,
        recaptcha_token=config.TEST_RECAPTCHA_TOKEN,
        client_organization_key=config.TEST_CLIENT_ORG_KEY,
        access_code=config.TEST_ACCESS_CODE,
    )


def build_payment_payload(config: type[Config], context: IterationContext) -> dict[str, Any]:
    """Purchase payload for the payment-only scenario."""
    return {
        "amount": DEFAULT_PAYMENT_AMOUNT,
        "listingId": config.TEST_LISTING_ID,
        "holdId": config.TEST_HOLD_ID,
        "paymentToken": config.TEST_PAYMENT_TOKEN,
        "name": f"Test User {context.vu}-{context.iteration}",
        "email": f"test-{context.vu}-{context.iteration}@example.com",
        "licensePlateNumber": random_license_plate(),
        "licensePlateState": config.TEST_LICENSE_PLATE_STATE,
        "token": config.TEST_RECAPTCHA_TOKEN,
        "clientOrganizationKey": config.TEST_CLIENT_ORG_KEY,
    }


def run_payment_iteration(
    client: HttpSession,
    headers: dict[str, str],
    config: type[Config],
    context: IterationContext,
    metrics: MetricRegistry,
) -> bool:
    """
    Purchase against a pre-created hold and finish any pending challenge.

    Records ``payment_duration`` for the purchase call and one
    ``payment_success_rate`` sample (200/202 counts as success).  A
    failed completion adds a second, failing sample.

    Returns:
        Whether the purchase call itself succeeded.
    """
    payload = build_payment_payload(config, context)

    started = time.perf_counter()
    response = purchase_pass(client, headers, payload)
    metrics.trend("payment_duration").add(_elapsed_ms(started))

    success = response.status_code in ACCEPTED_PURCHASE_STATUSES
    metrics.rate("payment_success_rate").add(success)

    if not success:
        logger.error(
            "Payment failed for %s: %s - %s",
            context.label,
            response.status_code,
            response.text,
        )
        return False

    payment_intent = pending_payment_intent(response)
    if payment_intent is not None:
        logger.info("3DS required for %s, completing payment...", context.label)
        complete_response = complete_purchase(client, headers, {"paymentId": payment_intent})
        if complete_response.status_code != 200:
            logger.error("Payment completion failed: %s", complete_response.status_code)
            metrics.rate("payment_success_rate").add(False)

    return True


def run_complete_purchase_iteration(
    client: HttpSession,
    headers: dict[str, str],
    config: type[Config],
    context: IterationContext,
    metrics: MetricRegistry,
) -> bool:
    """
    Create a hold, buy against it, and complete the payment if required.

    Metrics recorded:

    - ``hold_creation_duration`` / ``hold_creation_success_rate`` for
      every iteration; ``failed_holds`` when no usable hold came back.
    - ``purchase_duration`` / ``purchase_success_rate`` once a hold
      exists; ``total_purchases`` when the terminal status is 200.

    Returns:
        Whether the iteration ended with a settled purchase.
    """
    product_type = ProductType(config.PRODUCT_TYPE)

    if product_type is ProductType.SEASON_PASS and config.TEST_LANDMARK_ID:
        get_season_pass_listing(client, headers, config.TEST_LISTING_ID, config.TEST_LANDMARK_ID)

    logger.info("%s: Creating hold for listing %s...", context.label, config.TEST_LISTING_ID)
    hold_payload = create_hold_payload(product_type, config.TEST_LISTING_ID, config.TEST_PRICING_ID)

    started = time.perf_counter()
    hold_response = create_inventory_hold(client, headers, hold_payload)
    metrics.trend("hold_creation_duration").add(_elapsed_ms(started))

    hold = parse_hold_response(hold_response)
    metrics.rate("hold_creation_success_rate").add(hold is not None)

    if hold is None:
        logger.error(
            "%s: Hold creation failed - %s: %s",
            context.label,
            hold_response.status_code,
            hold_response.text,
        )
        metrics.counter("failed_holds").add(1)
        return False

    logger.info(
        "%s: Hold created - ID: %s, Amount: %s, Expiry: %s",
        context.label,
        hold.hold_id,
        _format_amount(hold.amount),
        hold.expiry,
    )

    purchase_data = build_purchase_data(config, context)
    flow = EVENT_PASS_FLOW if product_type is ProductType.EVENT_PASS else SEASON_PASS_FLOW

    logger.info("%s: Purchasing %s with hold %s...", context.label, flow.name, hold.hold_id)
    started = time.perf_counter()
    response = flow.run(client, headers, hold, purchase_data)
    duration_ms = _elapsed_ms(started)
    metrics.trend("purchase_duration").add(duration_ms)

    success = response.status_code == 200
    metrics.rate("purchase_success_rate").add(success)

    if success:
        metrics.counter("total_purchases").add(1)
        logger.info("%s: Purchase completed successfully in %.0fms", context.label, duration_ms)
    else:
        logger.error(
            "%s: Purchase failed - %s: %s",
            context.label,
            response.status_code,
            response.text,
        )
    return success


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000.0


def _format_amount(amount: Any) -> str:
    if isinstance(amount, (int, float)):
        return f"${amount / 100:.2f}"
    return "n/a"
