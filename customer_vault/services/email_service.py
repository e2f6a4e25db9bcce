"""
Outbound email interface.

Delivery itself (SMTP, a provider API) is outside this service. The auth
flows depend only on EmailSender; deployments plug in a real sender via
the get_email_sender dependency. The default implementation records that
a message would have been sent, without the code itself.
"""

import logging
from abc import ABC, abstractmethod


logger = logging.getLogger(__name__)


class EmailSender(ABC):
    """Interface for sending account emails."""

    @abstractmethod
    async def send_reset_code(self, email: str, reset_code: str, user_name: str) -> None:
        ...


class LoggingEmailSender(EmailSender):
    async def send_reset_code(self, email: str, reset_code: str, user_name: str) -> None:
        logger.info("Password reset code issued for %s (no mail transport configured)", email)
