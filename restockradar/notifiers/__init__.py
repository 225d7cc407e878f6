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

"""Notification delivery for Restock Radar.

Public API:

- Notification: Immutable message with alert builders
- Priority: Delivery priority (LOW, NORMAL, HIGH, URGENT)
- Notifier: Protocol every channel satisfies
- EmailNotifier: SMTP channel
- classify_smtp_error: Map raw SMTP errors to DeliveryFailed

Example:
    Send a test message:

        from restockradar.notifiers import EmailNotifier

        notifier = EmailNotifier.from_settings(config.email, credentials)
        ok = notifier.test_connection("me@example.com")

"""

from .base import Notification, Notifier, Priority
from .email import EmailNotifier, classify_smtp_error

__all__ = [
    "EmailNotifier",
    "Notification",
    "Notifier",
    "Priority",
    "classify_smtp_error",
]
