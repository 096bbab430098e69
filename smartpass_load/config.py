"""
Load-test configuration module.

Defines configuration classes for the environments the load tests run
in.  Values are read from environment variables with defaults that
point at placeholder identifiers, so a scenario can be smoke-run
without any setup and then aimed at a real stage by exporting the
variables below.

Key Concepts Demonstrated:
- Class-based configuration with inheritance for shared defaults
- Environment-variable overrides (``BASE_URL``, ``TEST_LISTING_ID`` ...)
- Separate testing configuration with non-routable hosts
"""

from __future__ import annotations

import os
from pathlib import Path

# Repository root (the directory that holds ``tests/performance``).
BASE_DIR = Path(__file__).resolve().parent.parent


class Config:
    """Base configuration shared by every environment."""

    BASE_URL: str = os.environ.get("BASE_URL", "https://api.example.com")

    BASIC_AUTH_USERNAME: str = os.environ.get("BASIC_AUTH_USERNAME", "")
    BASIC_AUTH_PASSWORD: str = os.environ.get("BASIC_AUTH_PASSWORD", "")

    # Identifiers of the listing the scenarios buy from.  The defaults are
    # placeholders; real runs export ids that exist on the target stage.
    TEST_LISTING_ID: str = os.environ.get(
        "TEST_LISTING_ID", "00000000-0000-0000-0000-000000000001"
    )
    TEST_PRICING_ID: str = os.environ.get(
        "TEST_PRICING_ID", "00000000-0000-0000-0000-000000000002"
    )
    TEST_CLIENT_ORG_KEY: str = os.environ.get(
        "TEST_CLIENT_ORG_KEY", "00000000-0000-0000-0000-000000000003"
    )
    # Pre-created hold used by the payment-only scenario.
    TEST_HOLD_ID: str = os.environ.get(
        "TEST_HOLD_ID", "00000000-0000-0000-0000-000000000002"
    )
    TEST_LANDMARK_ID: str | None = os.environ.get("TEST_LANDMARK_ID") or None
    TEST_ACCESS_CODE: str = os.environ.get("TEST_ACCESS_CODE", "")

    # 0 = event pass, 1 = season pass
    PRODUCT_TYPE: int = int(os.environ.get("PRODUCT_TYPE", "0"))

    TEST_PAYMENT_TOKEN: str = os.environ.get("TEST_PAYMENT_TOKEN", "faked")
    TEST_RECAPTCHA_TOKEN: str = os.environ.get("TEST_RECAPTCHA_TOKEN", "test-recaptcha-token")
    TEST_LICENSE_PLATE_STATE: str = os.environ.get("TEST_LICENSE_PLATE_STATE", "CA")

    LOAD_PROFILE: str = os.environ.get("LOAD_PROFILE", "payments-flow")
    LOAD_PROFILES_FILE: Path = Path(
        os.environ.get(
            "LOAD_PROFILES_FILE",
            str(BASE_DIR / "tests" / "performance" / "profiles.yml"),
        )
    )


class DevelopmentConfig(Config):
    """Settings for runs launched from a workstation."""


class TestingConfig(Config):
    """
    Unit-test overrides.

    Points the base URL at a non-routable host and pins every identifier
    so assertions do not depend on the caller's shell environment.
    """

    BASE_URL: str = "http://smartpass.test"
    BASIC_AUTH_USERNAME: str = "loadtest"
    BASIC_AUTH_PASSWORD: str = "secret"
    TEST_LISTING_ID: str = "listing-1"
    TEST_PRICING_ID: str = "pricing-1"
    TEST_CLIENT_ORG_KEY: str = "org-1"
    TEST_HOLD_ID: str = "hold-static"
    TEST_LANDMARK_ID: str | None = None
    TEST_ACCESS_CODE: str = ""
    PRODUCT_TYPE: int = 0
    TEST_PAYMENT_TOKEN: str = "faked"
    TEST_RECAPTCHA_TOKEN: str = "test-recaptcha-token"
    TEST_LICENSE_PLATE_STATE: str = "CA"
    LOAD_PROFILE: str = "payments-flow"
    LOAD_PROFILES_FILE: Path = BASE_DIR / "tests" / "performance" / "profiles.yml"


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "default": DevelopmentConfig,
}


def get_config(env: str | None = None) -> type[Config]:
    """
    Get the configuration class for the specified environment.

    Args:
        env: Environment name (development, testing).
             If None, uses the LOADTEST_ENV environment variable.

    Returns:
        Configuration class for the specified environment.
    """
    if env is None:
        env = os.environ.get("LOADTEST_ENV", "development")
    return config.get(env, config["default"])
