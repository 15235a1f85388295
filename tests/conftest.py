"""Pytest configuration and fixtures for resort_core tests.

This module provides reusable fixtures for testing:
- DynamoDB mocking with moto
- In-memory store and ledger backends
- Sample data fixtures (resources, orders, instruments)
"""

import datetime as dt
import os
from decimal import Decimal
from typing import Any, Callable, Generator

import boto3
import pytest
from moto import mock_aws

# === Environment Setup ===

# Set environment variables for testing before imports
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-1")
os.environ.setdefault("DYNAMODB_TABLE_PREFIX", "test-resort")

# Only set fake credentials for moto if no real credentials are present
if not os.environ.get("AWS_PROFILE") and not os.environ.get("AWS_ACCESS_KEY_ID"):
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

from resort_core.config import reset_settings  # noqa: E402
from resort_core.models import (  # noqa: E402
    Coupon,
    DiscountType,
    GiftCard,
    Interval,
    LoyaltyAccount,
    Order,
    Resource,
    ResourceKind,
    new_entity_id,
)
from resort_core.services import (  # noqa: E402
    DynamoDBRedemptionLedger,
    DynamoDBService,
    DynamoDBStore,
    InMemoryRedemptionLedger,
    InMemoryStore,
    reset_dynamodb_service,
)

TABLE_PREFIX = "test-resort"


def _make_interval(day: int, start_hour: int, end_hour: int, month: int = 7) -> Interval:
    """Interval on a day of July 2030 between two whole hours (UTC)."""
    return Interval(
        start=dt.datetime(2030, month, day, start_hour, tzinfo=dt.UTC),
        end=dt.datetime(2030, month, day, end_hour, tzinfo=dt.UTC),
    )


# === Singleton Fixtures ===


@pytest.fixture(autouse=True)
def reset_singletons() -> Generator[None, None, None]:
    """Reset settings and DynamoDB singletons before and after each test.

    This ensures tests using mock_aws get a fresh service instance
    inside the mock context and settings re-read the environment.
    """
    reset_settings()
    reset_dynamodb_service()
    yield
    reset_settings()
    reset_dynamodb_service()


# === DynamoDB Fixtures ===


@pytest.fixture
def aws_credentials() -> None:
    """Mocked AWS Credentials for moto."""
    if not os.environ.get("AWS_PROFILE"):
        os.environ["AWS_ACCESS_KEY_ID"] = "testing"
        os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
        os.environ["AWS_SECURITY_TOKEN"] = "testing"
        os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "eu-west-1"


@pytest.fixture
def dynamodb_client(aws_credentials: None) -> Generator[Any, None, None]:
    """Create a mocked DynamoDB client."""
    with mock_aws():
        client = boto3.client("dynamodb", region_name="eu-west-1")
        yield client


def _simple_table(name: str, key: str) -> dict[str, Any]:
    return {
        "TableName": f"{TABLE_PREFIX}-{name}",
        "KeySchema": [{"AttributeName": key, "KeyType": "HASH"}],
        "AttributeDefinitions": [{"AttributeName": key, "AttributeType": "S"}],
        "BillingMode": "PAY_PER_REQUEST",
    }


@pytest.fixture
def create_tables(dynamodb_client: Any) -> None:
    """Create all required DynamoDB tables for testing."""
    tables = [
        _simple_table("resources", "resource_id"),
        _simple_table("orders", "order_id"),
        _simple_table("coupons", "code"),
        _simple_table("gift-cards", "code"),
        _simple_table("loyalty-accounts", "user_id"),
        {
            "TableName": f"{TABLE_PREFIX}-reservations",
            "KeySchema": [{"AttributeName": "reservation_id", "KeyType": "HASH"}],
            "AttributeDefinitions": [
                {"AttributeName": "reservation_id", "AttributeType": "S"},
                {"AttributeName": "resource_id", "AttributeType": "S"},
                {"AttributeName": "start_at", "AttributeType": "S"},
            ],
            "GlobalSecondaryIndexes": [
                {
                    "IndexName": "resource_id-start_at-index",
                    "KeySchema": [
                        {"AttributeName": "resource_id", "KeyType": "HASH"},
                        {"AttributeName": "start_at", "KeyType": "RANGE"},
                    ],
                    "Projection": {"ProjectionType": "ALL"},
                },
            ],
            "BillingMode": "PAY_PER_REQUEST",
        },
        {
            "TableName": f"{TABLE_PREFIX}-redemptions",
            "KeySchema": [{"AttributeName": "idempotency_key", "KeyType": "HASH"}],
            "AttributeDefinitions": [
                {"AttributeName": "idempotency_key", "AttributeType": "S"},
                {"AttributeName": "order_id", "AttributeType": "S"},
            ],
            "GlobalSecondaryIndexes": [
                {
                    "IndexName": "order_id-index",
                    "KeySchema": [{"AttributeName": "order_id", "KeyType": "HASH"}],
                    "Projection": {"ProjectionType": "ALL"},
                },
            ],
            "BillingMode": "PAY_PER_REQUEST",
        },
        {
            "TableName": f"{TABLE_PREFIX}-coupon-usage",
            "KeySchema": [
                {"AttributeName": "code", "KeyType": "HASH"},
                {"AttributeName": "user_id", "KeyType": "RANGE"},
            ],
            "AttributeDefinitions": [
                {"AttributeName": "code", "AttributeType": "S"},
                {"AttributeName": "user_id", "AttributeType": "S"},
            ],
            "BillingMode": "PAY_PER_REQUEST",
        },
    ]

    for table_config in tables:
        dynamodb_client.create_table(**table_config)


@pytest.fixture
def dynamodb_service(create_tables: None) -> DynamoDBService:
    """DynamoDBService bound to the mocked tables."""
    return DynamoDBService(TABLE_PREFIX)


@pytest.fixture
def dynamodb_store(dynamodb_service: DynamoDBService) -> DynamoDBStore:
    return DynamoDBStore(dynamodb_service)


@pytest.fixture
def dynamodb_ledger(dynamodb_service: DynamoDBService) -> DynamoDBRedemptionLedger:
    return DynamoDBRedemptionLedger(dynamodb_service)


# === In-memory Fixtures ===


@pytest.fixture
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def memory_ledger() -> InMemoryRedemptionLedger:
    return InMemoryRedemptionLedger()


# === Sample Data Fixtures ===


@pytest.fixture
def sample_chalet() -> Resource:
    """Sample chalet sleeping four guests."""
    return Resource(
        resource_id=new_entity_id(),
        name="Chalet Cedar",
        kind=ResourceKind.CHALET,
        capacity=4,
    )


@pytest.fixture
def sample_venue() -> Resource:
    """Sample event venue for up to 120 guests."""
    return Resource(
        resource_id=new_entity_id(),
        name="Lakeside Hall",
        kind=ResourceKind.VENUE,
        capacity=120,
    )


@pytest.fixture
def sample_order() -> Order:
    """Dine-in order: subtotal 100.00, tax 11.00, service 10.00, total 121.00."""
    return Order.place(Decimal("100.00"), customer_id="guest-123")


@pytest.fixture
def sample_coupon() -> Coupon:
    """Fixed $10 coupon usable on any order."""
    return Coupon(code="SAVE10", discount_type=DiscountType.FIXED, value=Decimal("10.00"))


@pytest.fixture
def sample_loyalty_account() -> LoyaltyAccount:
    """Loyalty account with 500 points worth $0.10 each."""
    return LoyaltyAccount(
        user_id="guest-123", points_balance=500, point_value=Decimal("0.10")
    )


@pytest.fixture
def sample_gift_card() -> GiftCard:
    """Active $50 gift card."""
    return GiftCard(code="GIFT-50", balance=Decimal("50.00"))


@pytest.fixture
def make_interval() -> Callable[..., Interval]:
    """Factory for intervals on a given day between two whole hours."""
    return _make_interval
