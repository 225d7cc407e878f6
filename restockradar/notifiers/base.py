# Copyright 2025 Roger Cibrian
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Notification types and the notifier protocol for Restock Radar.

A Notification is an immutable message (recipients, subject, body, priority)
built from a list of products whose stock changed. A Notifier delivers it.

Builders:

- Notification.stock_alert: products came back in stock (HIGH priority)
- Notification.out_of_stock_alert: products sold out (NORMAL priority)
- Notification.test_message: configuration check (LOW priority)

Example:
    Build and send a restock alert:
        ```python
        from restockradar.notifiers import Notification

        alert = Notification.stock_alert(["me@example.com"], products)
        notifier.send(alert.recipients, alert.subject, alert.body, alert.priority)
        ```
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Protocol

from restockradar.models import ProductState

__all__ = ["Notification", "Notifier", "Priority"]

PRODUCT_URL = "https://shop.amul.com/products/{key}"


class Priority(Enum):
    """Delivery priority of a notification."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def x_priority(self) -> str:
        """Value for the X-Priority mail header (1 = highest, 5 = lowest)."""
        if self in (Priority.URGENT, Priority.HIGH):
            return "1"
        if self is Priority.LOW:
            return "5"
        return "3"


def _product_block(index: int, product: ProductState) -> str:
    return (
        f"{index}. {product.name}\n"
        f"   Available quantity: {product.quantity}\n"
        f"   Product link: {PRODUCT_URL.format(key=product.key)}\n"
    )


@dataclass(frozen=True)
class Notification:
    """An outgoing message.

    Attributes:
        recipients: Destination addresses.
        subject: Subject line.
        body: Plain-text body.
        priority: Delivery priority.
        products: Products the message is about (empty for test messages).
        created_at: Local time the message was built.
    """

    recipients: tuple[str, ...]
    subject: str
    body: str
    priority: Priority = Priority.NORMAL
    products: tuple[ProductState, ...] = ()
    created_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def stock_alert(
        cls, recipients: Sequence[str], products: Sequence[ProductState]
    ) -> Notification:
        """Alert for products that are back in stock."""
        count = len(products)
        now = datetime.now()
        lines = [
            "Great news! The following Amul products are now back in stock:",
            "",
        ]
        lines += [_product_block(i, p) for i, p in enumerate(products, start=1)]
        lines += [
            "Hurry up and grab them before they sell out again!",
            "",
            f"Checked at: {now:%Y-%m-%d %H:%M:%S}",
            "",
            "--",
            "Amul Stock Radar",
        ]
        return cls(
            recipients=tuple(recipients),
            subject=f"Amul Stock Alert - {count} Product(s) Now Available!",
            body="\n".join(lines),
            priority=Priority.HIGH,
            products=tuple(products),
            created_at=now,
        )

    @classmethod
    def out_of_stock_alert(
        cls, recipients: Sequence[str], products: Sequence[ProductState]
    ) -> Notification:
        """Alert for products that just sold out."""
        count = len(products)
        now = datetime.now()
        lines = ["The following Amul products are now out of stock:", ""]
        lines += [
            f"{i}. {p.name}\n   Product link: {PRODUCT_URL.format(key=p.key)}\n"
            for i, p in enumerate(products, start=1)
        ]
        lines += [
            "You will be notified when they are back in stock.",
            "",
            f"Checked at: {now:%Y-%m-%d %H:%M:%S}",
            "",
            "--",
            "Amul Stock Radar",
        ]
        return cls(
            recipients=tuple(recipients),
            subject=f"Amul Stock Alert - {count} Product(s) Sold Out",
            body="\n".join(lines),
            priority=Priority.NORMAL,
            products=tuple(products),
            created_at=now,
        )

    @classmethod
    def test_message(cls, recipients: Sequence[str]) -> Notification:
        """Message used to check SMTP settings end to end."""
        now = datetime.now()
        body = (
            "This is a test email from Amul Stock Radar.\n"
            "\n"
            "If you received this message, your email notification settings "
            "are working correctly.\n"
            "\n"
            f"Sent at: {now:%Y-%m-%d %H:%M:%S}\n"
        )
        return cls(
            recipients=tuple(recipients),
            subject="Amul Stock Radar - Test Email",
            body=body,
            priority=Priority.LOW,
            created_at=now,
        )


class Notifier(Protocol):
    """Protocol for notification channels.

    Attributes:
        name: Human-readable channel name used in logs.
    """

    name: str

    def send(
        self,
        recipients: Sequence[str],
        subject: str,
        body: str,
        priority: Priority = Priority.NORMAL,
    ) -> None:
        """Deliver one message to every recipient.

        Raises:
            DeliveryFailed: If the message could not be delivered and the
                failure is not worth retrying.
            RetriesExhausted: If every delivery attempt failed.
            Cancelled: If delivery was interrupted.

        """
        ...

    def is_configured(self) -> bool:
        """Return True if the channel has everything it needs to send."""
        ...
