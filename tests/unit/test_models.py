"""
Unit Tests for Order Model and Order Message Validation

These are unit tests that don't require a database connection.

TEST STRATEGY:
- Test Order creation from a validated message
- Test every validation rule, including the boundaries
- Test that "missing" and "zero" are reported differently
"""

from decimal import Decimal

import pytest

from src.order_processor.models import (
    ORDER_STATUS_COMPLETED,
    Order,
    OrderLimits,
    OrderValidationError,
    validate_order_message,
)

LIMITS = OrderLimits(max_quantity=100, min_price=Decimal("0.01"), max_price=Decimal("1000"))

# ==============================================================================
# MODEL CREATION TESTS
# ==============================================================================


@pytest.mark.unit
def test_order_from_message(sample_order_data):
    """Test creating Order from message data."""
    order = Order.from_message(sample_order_data)

    assert order.user_id == 1
    assert order.product_id == 5
    assert order.product_name == "Widget"
    assert order.sku == "WID-001"
    assert order.quantity == 3
    assert order.total_price == Decimal("29.97")
    assert order.order_status == ORDER_STATUS_COMPLETED


@pytest.mark.unit
def test_order_from_message_optional_fields_absent():
    """Older producers send neither productId nor sku."""
    order = Order.from_message(
        {"userId": 2, "productName": "Gadget", "quantity": 1, "totalPrice": Decimal("5.00")}
    )

    assert order.product_id is None
    assert order.sku is None
    assert order.total_price == Decimal("5.00")


@pytest.mark.unit
def test_order_repr(sample_order_data):
    order = Order.from_message(sample_order_data)
    assert "Widget" in repr(order)


# ==============================================================================
# VALIDATION TESTS
# ==============================================================================


@pytest.mark.unit
def test_valid_message_passes(sample_order_data):
    validate_order_message(sample_order_data, OrderLimits())


@pytest.mark.unit
@pytest.mark.parametrize("field", ["userId", "productName", "quantity", "totalPrice"])
def test_missing_required_field(sample_order_data, field):
    del sample_order_data[field]

    with pytest.raises(OrderValidationError) as exc_info:
        validate_order_message(sample_order_data, LIMITS)

    assert exc_info.value.field == field
    assert "Missing required fields" in str(exc_info.value)


@pytest.mark.unit
def test_null_field_counts_as_missing(sample_order_data):
    sample_order_data["quantity"] = None

    with pytest.raises(OrderValidationError, match="Missing required fields"):
        validate_order_message(sample_order_data, LIMITS)


@pytest.mark.unit
def test_zero_user_id_is_not_missing(sample_order_data):
    """Zero is present but invalid, a different error than missing."""
    sample_order_data["userId"] = 0

    with pytest.raises(OrderValidationError) as exc_info:
        validate_order_message(sample_order_data, LIMITS)

    assert exc_info.value.field == "userId"
    assert "positive integer" in str(exc_info.value)


@pytest.mark.unit
@pytest.mark.parametrize("user_id", [-1, "1", 1.5, True])
def test_invalid_user_id(sample_order_data, user_id):
    sample_order_data["userId"] = user_id

    with pytest.raises(OrderValidationError) as exc_info:
        validate_order_message(sample_order_data, LIMITS)
    assert exc_info.value.field == "userId"


@pytest.mark.unit
@pytest.mark.parametrize("name", ["", "   ", 42])
def test_invalid_product_name(sample_order_data, name):
    sample_order_data["productName"] = name

    with pytest.raises(OrderValidationError) as exc_info:
        validate_order_message(sample_order_data, LIMITS)
    assert exc_info.value.field == "productName"


@pytest.mark.unit
def test_product_name_too_long(sample_order_data):
    sample_order_data["productName"] = "x" * 256

    with pytest.raises(OrderValidationError, match="255"):
        validate_order_message(sample_order_data, LIMITS)


@pytest.mark.unit
def test_quantity_at_maximum_accepted(sample_order_data):
    sample_order_data["quantity"] = LIMITS.max_quantity
    validate_order_message(sample_order_data, LIMITS)


@pytest.mark.unit
def test_quantity_above_maximum_rejected(sample_order_data):
    sample_order_data["quantity"] = LIMITS.max_quantity + 1

    with pytest.raises(OrderValidationError) as exc_info:
        validate_order_message(sample_order_data, LIMITS)
    assert exc_info.value.field == "quantity"
    assert "exceeds maximum" in str(exc_info.value)


@pytest.mark.unit
@pytest.mark.parametrize("quantity", [0, -3, 2.5, "3"])
def test_invalid_quantity(sample_order_data, quantity):
    sample_order_data["quantity"] = quantity

    with pytest.raises(OrderValidationError) as exc_info:
        validate_order_message(sample_order_data, LIMITS)
    assert exc_info.value.field == "quantity"


@pytest.mark.unit
@pytest.mark.parametrize(
    "price", [Decimal("0.01"), Decimal("1000"), 500, Decimal("29.97")]
)
def test_price_within_range_accepted(sample_order_data, price):
    sample_order_data["totalPrice"] = price
    validate_order_message(sample_order_data, LIMITS)


@pytest.mark.unit
@pytest.mark.parametrize(
    "price", [Decimal("0.00"), Decimal("1000.01"), -5, float("nan"), float("inf"), "29.97"]
)
def test_price_out_of_range_or_not_finite(sample_order_data, price):
    sample_order_data["totalPrice"] = price

    with pytest.raises(OrderValidationError) as exc_info:
        validate_order_message(sample_order_data, LIMITS)
    assert exc_info.value.field == "totalPrice"


@pytest.mark.unit
def test_invalid_optional_fields(sample_order_data):
    sample_order_data["productId"] = "five"
    with pytest.raises(OrderValidationError, match="productId"):
        validate_order_message(sample_order_data, LIMITS)

    sample_order_data["productId"] = None
    sample_order_data["sku"] = 123
    with pytest.raises(OrderValidationError, match="sku"):
        validate_order_message(sample_order_data, LIMITS)


@pytest.mark.unit
def test_body_must_be_object():
    with pytest.raises(OrderValidationError) as exc_info:
        validate_order_message([1, 2, 3], LIMITS)
    assert exc_info.value.field == "body"


@pytest.mark.unit
def test_validation_error_is_value_error():
    assert issubclass(OrderValidationError, ValueError)
