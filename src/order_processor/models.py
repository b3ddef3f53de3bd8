"""
Order Records and Order Message Validation

This module defines:
1. The SQLAlchemy ORM models the processor writes to (orders, users)
2. The validation rules an order message must pass before it is stored

ORDER MESSAGE (JSON body placed on the queue by the REST front door):
{
  "userId": 1,                 required, positive integer
  "productId": 5,              optional, integer or null
  "productName": "Widget",     required, non-empty string
  "sku": "WID-001",            optional, string or null
  "quantity": 3,               required, 1..max_quantity
  "totalPrice": 29.97,         required, finite, min_price..max_price
  "correlationId": "c0ffee"    optional, used for log correlation only
}

VALIDATION IS FAIL-FAST:
- Every rule is checked before any database call
- The first violation raises OrderValidationError naming the field
- "Missing" and "present but zero" are different errors

ORDER RECORD LIFECYCLE:
- Inserted once by the order handler with status "completed"
- created_at is assigned by the database server
- Never updated by this service
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import TIMESTAMP, ForeignKey, Integer, Numeric, String, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

ORDER_STATUS_COMPLETED = "completed"

REQUIRED_FIELDS = ("userId", "productName", "quantity", "totalPrice")

PRODUCT_NAME_MAX_LENGTH = 255


# ==============================================================================
# DECLARATIVE BASE
# ==============================================================================


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


# ==============================================================================
# USER MODEL
# ==============================================================================
# Owned by the REST front door (registration). Mapped here only so the
# orders.user_id foreign key has a target in the metadata.


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username={self.username})>"


# ==============================================================================
# ORDER MODEL
# ==============================================================================


class Order(Base):
    """
    Order record created from one queue message.

    Attributes:
        id: Generated order identifier (PRIMARY KEY)
        user_id: Owning account (FOREIGN KEY users.id)
        product_id: Catalogue product, absent for older producers
        product_name: Product name as ordered
        sku: Stock keeping unit, optional
        quantity: Units ordered
        total_price: Order total, DECIMAL(10, 2)
        order_status: Always "completed" when written by this service
        created_at: Server-assigned insert timestamp
    """

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Foreign key violations surface as IntegrityError on insert and leave
    # the message for redelivery like any other insert failure.
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    product_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    product_name: Mapped[str] = mapped_column(String(PRODUCT_NAME_MAX_LENGTH), nullable=False)

    sku: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    # DECIMAL for money (exact precision), never FLOAT
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    order_status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=ORDER_STATUS_COMPLETED, index=True
    )

    created_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP,
        server_default=text("CURRENT_TIMESTAMP"),
        index=True,
    )

    @classmethod
    def from_message(cls, data: Dict[str, Any]) -> "Order":
        """
        Build an Order from a validated order message.

        Args:
            data: Message body that already passed validate_order_message()

        Returns:
            Unsaved Order instance with status "completed"
        """
        return cls(
            user_id=data["userId"],
            product_id=data.get("productId"),
            product_name=data["productName"],
            sku=data.get("sku"),
            quantity=data["quantity"],
            total_price=Decimal(str(data["totalPrice"])),
            order_status=ORDER_STATUS_COMPLETED,
        )

    def __repr__(self) -> str:
        return (
            f"<Order(id={self.id}, "
            f"user_id={self.user_id}, "
            f"product_name={self.product_name}, "
            f"quantity={self.quantity}, "
            f"total_price={self.total_price})>"
        )


# ==============================================================================
# ORDER MESSAGE VALIDATION
# ==============================================================================


class OrderValidationError(ValueError):
    """Raised when an order message is missing a field or a field is out of range."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field


@dataclass(frozen=True)
class OrderLimits:
    """Range limits applied to quantity and totalPrice."""

    max_quantity: int = 10000
    min_price: Decimal = Decimal("0.01")
    max_price: Decimal = Decimal("1000000")


def _is_int(value: Any) -> bool:
    # bool is a subclass of int; true/false are not valid ids or quantities
    return isinstance(value, int) and not isinstance(value, bool)


def _to_decimal(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    return None


def validate_order_message(data: Any, limits: OrderLimits) -> None:
    """
    Validate an order message body.

    Args:
        data: Parsed JSON body
        limits: Quantity and price limits

    Raises:
        OrderValidationError: On the first rule that fails

    RULES (checked in this order):
    1. Body is a JSON object
    2. userId, productName, quantity, totalPrice are all present (not null)
    3. userId is a positive integer
    4. productName is a non-empty string of at most 255 characters
    5. quantity is a positive integer not above limits.max_quantity
    6. totalPrice is a finite number within [min_price, max_price]
    7. productId (if present) is an integer, sku (if present) is a string
    """
    if not isinstance(data, dict):
        raise OrderValidationError("body", "Order message must be a JSON object")

    missing = [field for field in REQUIRED_FIELDS if data.get(field) is None]
    if missing:
        raise OrderValidationError(missing[0], f"Missing required fields: {missing}")

    user_id = data["userId"]
    if not _is_int(user_id) or user_id <= 0:
        raise OrderValidationError("userId", f"userId must be a positive integer, got {user_id!r}")

    product_name = data["productName"]
    if not isinstance(product_name, str) or not product_name.strip():
        raise OrderValidationError("productName", "productName must be a non-empty string")
    if len(product_name) > PRODUCT_NAME_MAX_LENGTH:
        raise OrderValidationError(
            "productName", f"productName exceeds {PRODUCT_NAME_MAX_LENGTH} characters"
        )

    quantity = data["quantity"]
    if not _is_int(quantity) or quantity <= 0:
        raise OrderValidationError(
            "quantity", f"quantity must be a positive integer, got {quantity!r}"
        )
    if quantity > limits.max_quantity:
        raise OrderValidationError(
            "quantity", f"quantity {quantity} exceeds maximum {limits.max_quantity}"
        )

    total_price = _to_decimal(data["totalPrice"])
    if total_price is None or not total_price.is_finite():
        raise OrderValidationError(
            "totalPrice", f"totalPrice must be a finite number, got {data['totalPrice']!r}"
        )
    if total_price < limits.min_price or total_price > limits.max_price:
        raise OrderValidationError(
            "totalPrice",
            f"totalPrice {total_price} outside [{limits.min_price}, {limits.max_price}]",
        )

    product_id = data.get("productId")
    if product_id is not None and not _is_int(product_id):
        raise OrderValidationError("productId", "productId must be an integer when present")

    sku = data.get("sku")
    if sku is not None and not isinstance(sku, str):
        raise OrderValidationError("sku", "sku must be a string when present")
