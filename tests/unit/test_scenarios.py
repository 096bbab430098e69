"""
Unit tests for the Locust entrypoint and the shared scenario user.
"""

import argparse

import pytest
from locust.env import Environment
from locust.exception import StopUser

from smartpass_load.config import TestingConfig
from smartpass_load.profiles import load_profile, parse_profile
from smartpass_load.runtime import install
from smartpass_load.shapes import ProfileShape
from tests.performance import locustfile
from tests.performance.scenarios.complete_purchase import CompletePurchaseUser
from tests.performance.scenarios.payments_flow import PaymentFlowUser

pytestmark = pytest.mark.unit

PROFILES_FILE = TestingConfig.LOAD_PROFILES_FILE


def _environment(profile="", tags=None, profiles_file=PROFILES_FILE):
    options = argparse.Namespace(profile=profile, profiles_file=str(profiles_file), tags=tags)
    return Environment(
        user_classes=[PaymentFlowUser, CompletePurchaseUser],
        shape_class=ProfileShape(),
        parsed_options=options,
    )


# -----------------------------------------------------------------------------
# Profile selection
# -----------------------------------------------------------------------------

@pytest.mark.parametrize(
    "profile, user_class",
    [
        ("payments-flow", PaymentFlowUser),
        ("purchase-sustained", CompletePurchaseUser),
    ],
)
def test_profile_selects_its_user_class(profile, user_class):
    """Test that a profile narrows the run to the user class it names."""
    # Arrange
    environment = _environment(profile=profile)

    # Act
    locustfile._select_profile(environment)

    # Assert
    assert environment.user_classes == [user_class]
    assert environment.load_runtime.profile.name == profile
    assert environment.shape_class.profile is environment.load_runtime.profile


def test_tags_win_over_profile_user():
    """Test that --tags picks the user classes even when a profile names another."""
    # Arrange
    environment = _environment(profile="complete-purchase", tags=["payments"])

    # Act
    locustfile._select_profile(environment)

    # Assert
    assert environment.user_classes == [PaymentFlowUser]
    assert environment.load_runtime.profile.name == "complete-purchase"


def test_no_profile_clears_shape():
    environment = _environment(profile="")

    locustfile._select_profile(environment)

    assert environment.shape_class is None
    assert environment.load_runtime.profile is None
    assert environment.user_classes == [PaymentFlowUser, CompletePurchaseUser]


def test_profile_naming_unknown_user_is_rejected(tmp_path):
    profiles_file = tmp_path / "profiles.yml"
    profiles_file.write_text(
        "profiles:\n"
        "  browse:\n"
        "    user: browse\n"
        "    stages:\n"
        "      - {duration: 10s, target: 1}\n"
    )
    environment = _environment(profile="browse", profiles_file=profiles_file)

    with pytest.raises(ValueError, match="unknown user 'browse'"):
        locustfile._select_profile(environment)


# -----------------------------------------------------------------------------
# Shared scenario user
# -----------------------------------------------------------------------------

def _started_user(profile=None):
    environment = Environment(host=TestingConfig.BASE_URL)
    install(environment, profile)
    user = PaymentFlowUser(environment)
    user.on_start()
    return user


class _RecordingDriver:
    def __init__(self, error=None):
        self.contexts = []
        self.error = error

    def __call__(self, client, headers, config, context, metrics):
        self.contexts.append(context)
        if self.error is not None:
            raise self.error
        return True


def test_on_start_builds_headers_and_vu():
    user = _started_user()

    assert user.headers["Authorization"].startswith("Basic ")
    assert user.vu >= 1
    assert user.iteration == 0


def test_invalid_product_type_stops_user(monkeypatch):
    """Test that a PRODUCT_TYPE other than 0 or 1 stops the user in on_start."""
    # Arrange
    monkeypatch.setattr(TestingConfig, "PRODUCT_TYPE", 5)
    environment = Environment(host=TestingConfig.BASE_URL)
    install(environment, None)
    user = PaymentFlowUser(environment)

    # Act / Assert
    with pytest.raises(StopUser):
        user.on_start()


def test_run_iteration_passes_identity_and_counts():
    # Arrange
    user = _started_user()
    driver = _RecordingDriver()

    # Act
    assert user._run_iteration(driver) is True
    assert user._run_iteration(driver) is True

    # Assert
    assert [context.iteration for context in driver.contexts] == [0, 1]
    assert {context.vu for context in driver.contexts} == {user.vu}
    assert user.iteration == 2


def test_run_iteration_stops_user_once_budget_spent():
    """Test that a shared-iterations user stops after the budget is claimed."""
    # Arrange
    user = _started_user(load_profile(PROFILES_FILE, "purchase-concurrent"))
    budget = user.environment.load_runtime.budget
    budget.total = 1
    driver = _RecordingDriver()

    # Act
    first = user._run_iteration(driver)

    # Assert
    assert first is True
    with pytest.raises(StopUser):
        user._run_iteration(driver)
    assert len(driver.contexts) == 1
    assert budget.finished


def test_failed_iteration_still_counts_as_completed():
    """Test that an iteration whose driver raises is still marked complete."""
    # Arrange
    user = _started_user(load_profile(PROFILES_FILE, "purchase-concurrent"))
    budget = user.environment.load_runtime.budget
    driver = _RecordingDriver(error=RuntimeError("connection reset"))

    # Act
    with pytest.raises(RuntimeError):
        user._run_iteration(driver)

    # Assert
    assert budget.claimed == 1
    assert budget.completed == 1


def test_run_iteration_skips_driver_while_rate_is_zero():
    # Arrange
    profile = parse_profile(
        "quiet-start",
        {
            "user": "payments",
            "executor": "ramping-arrival-rate",
            "start_rate": 0,
            "pre_allocated_vus": 2,
            "stages": [{"duration": "10s", "target": 0}, {"duration": "10s", "target": 5}],
        },
    )
    user = _started_user(profile)
    user.environment.events.test_start.fire(environment=user.environment)
    driver = _RecordingDriver()

    # Act
    ran = user._run_iteration(driver)

    # Assert
    assert ran is False
    assert driver.contexts == []
    assert user.iteration == 0
