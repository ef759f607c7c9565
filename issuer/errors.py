"""
Reason codes, status messages and errors for issuer account setup.

Reason codes are stable strings suitable for alerting rules; messages are a
fixed prefix followed by the underlying error text, verbatim.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from issuer.models import IssuerStatus

REASON_ACCOUNT_REGISTRATION_FAILED = "ErrRegisterACMEAccount"
REASON_ACCOUNT_VERIFICATION_FAILED = "ErrVerifyACMEAccount"
REASON_ACCOUNT_REGISTERED = "ACMEAccountRegistered"
REASON_ACCOUNT_VERIFIED = "ACMEAccountVerified"

MESSAGE_ACCOUNT_REGISTRATION_FAILED = "Failed to register ACME account: "
MESSAGE_ACCOUNT_VERIFICATION_FAILED = "Failed to verify ACME account: "
MESSAGE_ACCOUNT_REGISTERED = "The ACME account was registered with the ACME server"
MESSAGE_ACCOUNT_VERIFIED = "The ACME account was verified with the ACME server"


class AccountSetupError(Exception):
    """
    Base class for account setup failures.

    ``reason`` is the machine-readable reason code, ``str(err)`` the full
    human-readable message.  Fatal subclasses raised by AccountSetup.setup
    carry the failed status in ``status``; the original failure is chained as
    ``__cause__``.
    """

    reason = REASON_ACCOUNT_REGISTRATION_FAILED
    prefix = MESSAGE_ACCOUNT_REGISTRATION_FAILED

    def __init__(self, cause: BaseException | str, status: Optional["IssuerStatus"] = None) -> None:
        self.detail = str(cause)
        self.status = status
        super().__init__(self.prefix + self.detail)

    @property
    def message(self) -> str:
        return self.prefix + self.detail


class KeyProvisionError(AccountSetupError):
    """The account key could not be loaded or created."""


class RegistrationVerificationError(AccountSetupError):
    """The recorded registration could not be confirmed.  Recoverable."""

    reason = REASON_ACCOUNT_VERIFICATION_FAILED
    prefix = MESSAGE_ACCOUNT_VERIFICATION_FAILED


class RegistrationError(AccountSetupError):
    """The authority rejected or could not complete registration."""
