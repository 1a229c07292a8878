"""
Console email sender adapter - Implements EmailSender protocol.

This module provides a console-based implementation of the domain's
email sender port, logging registration notices for demo purposes.
"""

import logging

logger = logging.getLogger(__name__)


class ConsoleEmailSender:
    """
    Implements EmailSender protocol via console logging.

    Uses structural subtyping - no explicit inheritance from Protocol.
    For demo/development purposes - prints registration notices to stdout.
    """

    def send_registration_notice(self, email: str, donor_id: str) -> None:
        """
        Log registration notice to console (simulates email delivery).

        In production, this would be replaced with an SMTP adapter that
        also carries the email verification link.

        Args:
            email: Recipient email address (normalized by domain layer)
            donor_id: Donor-assigned ID
        """
        logger.info("[REGISTRATION] Email: %s Donor ID: %s", email, donor_id)
