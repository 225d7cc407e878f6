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

"""Email notifier via SMTP.

Sends one message to all recipients in a single SMTP transaction. Supports
STARTTLS (usually port 587) or implicit SSL (usually port 465). Delivery is
retried as a unit with RetryPolicy.for_email_delivery().

Error Classification:

- Authentication failures, refused sender or recipients, and other 5xx
  replies are permanent (DeliveryFailed, not retryable)
- Connection errors, timeouts, dropped connections, and 4xx replies are
  transient (DeliveryFailed, retryable)

Credentials are passed in by the caller (see restockradar.auth); this
module never reads the environment.

Example:
    Send a restock alert:
        ```python
        from restockradar.auth import load_smtp_credentials
        from restockradar.notifiers import EmailNotifier, Notification

        notifier = EmailNotifier.from_settings(config.email, load_smtp_credentials())
        alert = Notification.stock_alert(config.email.recipients, products)
        notifier.send(alert.recipients, alert.subject, alert.body, alert.priority)
        ```
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from email.message import EmailMessage
from email.utils import formataddr, formatdate, make_msgid
import smtplib
import ssl
import threading

from restockradar import __version__
from restockradar.auth import SmtpCredentials
from restockradar.config import EmailSettings
from restockradar.exceptions import Cancelled, DeliveryFailed, RadarError
from restockradar.logging import Logger, get_global_logger
from restockradar.retry import RetryPolicy, execute_with_retry

from .base import Notification, Priority

__all__ = ["EmailNotifier", "classify_smtp_error"]

DEFAULT_SMTP_TIMEOUT = 10


def classify_smtp_error(err: Exception) -> DeliveryFailed:
    """Wrap a raw SMTP or socket error in DeliveryFailed.

    Args:
        err: Exception raised by smtplib or the socket layer.

    Returns:
        DeliveryFailed whose ``retryable`` flag reflects whether repeating
        the delivery may succeed.

    """
    if isinstance(err, smtplib.SMTPAuthenticationError):
        return DeliveryFailed(
            "Authentication failed. Please check your email credentials "
            f"(SMTP {err.smtp_code})",
            retryable=False,
        )
    if isinstance(err, smtplib.SMTPRecipientsRefused):
        refused = ", ".join(sorted(err.recipients))
        return DeliveryFailed(
            f"Invalid email address(es) in recipient list: {refused}",
            retryable=False,
        )
    if isinstance(err, smtplib.SMTPSenderRefused):
        return DeliveryFailed(
            f"Sender address {err.sender} refused (SMTP {err.smtp_code})",
            retryable=False,
        )
    if isinstance(err, smtplib.SMTPServerDisconnected):
        return DeliveryFailed(f"SMTP server disconnected: {err}")
    if isinstance(err, smtplib.SMTPResponseException):
        permanent = err.smtp_code >= 500
        return DeliveryFailed(
            f"SMTP error {err.smtp_code}: {_decode(err.smtp_error)}",
            retryable=not permanent,
        )
    if isinstance(err, smtplib.SMTPNotSupportedError):
        return DeliveryFailed(
            f"SMTP server does not support a required feature: {err}",
            retryable=False,
        )
    if isinstance(err, OSError):
        return DeliveryFailed(
            f"Connection to email server failed. This may be temporary. ({err})"
        )
    return DeliveryFailed(f"Unexpected error sending email: {err}", retryable=False)


def _decode(value: bytes | str) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


class EmailNotifier:
    """Notifier that delivers plain-text email over SMTP.

    Attributes:
        host: SMTP server hostname.
        port: SMTP server port.
        sender_name: Display name used in the From header.
    """

    def __init__(
        self,
        *,
        host: str,
        port: int,
        username: str,
        password: str,
        use_tls: bool = True,
        use_ssl: bool = False,
        sender_name: str = "Amul Stock Radar",
        timeout: float = DEFAULT_SMTP_TIMEOUT,
        policy: RetryPolicy | None = None,
        logger: Logger | None = None,
        cancel_event: threading.Event | None = None,
        smtp_factory: Callable[..., smtplib.SMTP] | None = None,
        smtp_ssl_factory: Callable[..., smtplib.SMTP_SSL] | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self._password = password
        self.use_tls = use_tls
        self.use_ssl = use_ssl
        self.sender_name = sender_name
        self.timeout = timeout
        self.policy = policy or RetryPolicy.for_email_delivery()
        self._logger = logger
        self._cancel_event = cancel_event
        self._smtp_factory = smtp_factory or smtplib.SMTP
        self._smtp_ssl_factory = smtp_ssl_factory or smtplib.SMTP_SSL

    @classmethod
    def from_settings(
        cls,
        settings: EmailSettings,
        credentials: SmtpCredentials,
        **kwargs,
    ) -> EmailNotifier:
        """Build a notifier from loaded settings and credentials.

        Raises:
            DeliveryFailed: If the settings are unusable (not retryable).
        """
        problems = settings.problems()
        if problems:
            raise DeliveryFailed(
                "Email configuration is invalid: " + "; ".join(problems),
                retryable=False,
            )
        return cls(
            host=settings.host,
            port=settings.port,
            username=credentials.username,
            password=credentials.password,
            use_tls=settings.use_tls,
            use_ssl=settings.use_ssl,
            sender_name=settings.sender_name,
            timeout=settings.timeout,
            **kwargs,
        )

    @property
    def name(self) -> str:
        return f"EmailNotifier[{self.host}:{self.port}]"

    @property
    def logger(self) -> Logger:
        return self._logger or get_global_logger()

    def is_configured(self) -> bool:
        return bool(
            self.host.strip()
            and self.port > 0
            and self.username.strip()
            and self._password.strip()
        )

    def build_message(
        self,
        recipients: Sequence[str],
        subject: str,
        body: str,
        priority: Priority = Priority.NORMAL,
    ) -> EmailMessage:
        """Create the MIME message for one delivery."""
        msg = EmailMessage()
        msg["From"] = formataddr((self.sender_name, self.username))
        msg["To"] = ", ".join(recipients)
        msg["Subject"] = subject
        msg["Date"] = formatdate(localtime=True)
        msg["Message-ID"] = make_msgid(domain=self.host)
        msg["X-Mailer"] = f"Restock Radar {__version__}"
        msg["X-Priority"] = priority.x_priority
        msg.set_content(body)
        return msg

    def send(
        self,
        recipients: Sequence[str],
        subject: str,
        body: str,
        priority: Priority = Priority.NORMAL,
    ) -> None:
        """Deliver one message to every recipient, with retries.

        Args:
            recipients: Destination addresses (at least one).
            subject: Subject line.
            body: Plain-text body.
            priority: Mapped to the X-Priority header.

        Raises:
            DeliveryFailed: On a permanent SMTP failure or bad arguments.
            RetriesExhausted: If every attempt failed with a transient error.
            Cancelled: If delivery was interrupted.

        """
        recipients = [r for r in recipients if r and r.strip()]
        if not recipients:
            raise DeliveryFailed("No recipients given", retryable=False)

        logger = self.logger
        logger.verbose(
            "EMAIL",
            f"Sending email to {len(recipients)} recipient(s) {recipients} "
            f"with {self.policy.describe()}",
        )
        try:
            message = self.build_message(recipients, subject, body, priority)
        except ValueError as err:
            # Malformed header values (e.g. an address containing a newline)
            raise DeliveryFailed(f"Cannot build email message: {err}", retryable=False) from err

        execute_with_retry(
            lambda: self._deliver(message, recipients),
            self.policy,
            f"Email delivery to {len(recipients)} recipient(s)",
            cancel_event=self._cancel_event,
            logger=logger,
        )
        logger.verbose(
            "EMAIL",
            f"Email sent successfully to {len(recipients)} recipient(s): {recipients}",
        )

    def send_notification(self, notification: Notification) -> None:
        """Deliver a prepared Notification."""
        self.send(
            notification.recipients,
            notification.subject,
            notification.body,
            notification.priority,
        )

    def test_connection(self, recipient: str) -> bool:
        """Send a test message and report whether it was delivered."""
        try:
            self.send_notification(Notification.test_message([recipient]))
        except Cancelled:
            raise
        except RadarError as err:
            self.logger.warning(
                "EMAIL", f"Email connection test failed for {recipient}: {err}"
            )
            return False
        self.logger.verbose("EMAIL", f"Email connection test successful for {recipient}")
        return True

    def _deliver(self, message: EmailMessage, recipients: Sequence[str]) -> None:
        """Run one SMTP transaction (single attempt)."""
        logger = self.logger
        logger.debug("EMAIL", f"Connecting to {self.host}:{self.port} (subject: {message['Subject']})")
        context = ssl.create_default_context()
        try:
            if self.use_ssl:
                smtp = self._smtp_ssl_factory(
                    self.host, self.port, timeout=self.timeout, context=context
                )
            else:
                smtp = self._smtp_factory(self.host, self.port, timeout=self.timeout)
            with smtp:
                if self.use_tls and not self.use_ssl:
                    smtp.ehlo()
                    smtp.starttls(context=context)
                    smtp.ehlo()
                smtp.login(self.username, self._password)
                refused = smtp.send_message(message, to_addrs=list(recipients))
        except (smtplib.SMTPException, OSError) as err:
            raise classify_smtp_error(err) from err

        if refused:
            logger.warning(
                "EMAIL",
                f"Server refused {len(refused)} recipient(s): {', '.join(sorted(refused))}",
            )
