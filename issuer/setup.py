"""
ACME account setup for an Issuer.

Every call re-evaluates the whole decision from scratch:

  1. ensure the account key exists (create it if the secret is missing)
  2. look up the registration recorded in status.acme.uri
       → found: Ready=True / ACMEAccountVerified, done
       → any failure: Warning event, fall through
  3. register a new account with the issuer's contact email
       → success: Ready=True / ACMEAccountRegistered, record the URI
       → failure: Ready=False / ErrRegisterACMEAccount, raise

The issuer passed in is never modified.  The returned status is a new value
derived from issuer.status; on failure the same value is attached to the
raised error so the caller can persist it before backing off.
"""
from __future__ import annotations

import logging
from typing import Callable, Optional

from josepy.jwk import JWKRSA

from acme.client import AcmeClient, Registration
from issuer import errors
from issuer.account import ensure_account_key
from issuer.context import Context
from issuer.events import EVENT_TYPE_WARNING, EventSink
from issuer.models import ConditionStatus, ConditionType, Issuer, IssuerStatus
from storage.secrets import SecretStore

logger = logging.getLogger(__name__)

ClientFactory = Callable[[JWKRSA, Issuer], AcmeClient]


def default_client_factory(key: JWKRSA, issuer: Issuer) -> AcmeClient:
    """
    Build an AcmeClient for *issuer* from the current application settings.
    Late-imports config to avoid circular imports at module load time.
    """
    from config import settings  # noqa: PLC0415

    eab = issuer.spec.acme.external_account_binding
    return AcmeClient(
        key=key,
        directory_url=issuer.spec.acme.server,
        eab_key_id=eab.key_id if eab else "",
        eab_hmac_key=eab.hmac_key if eab else "",
        timeout=settings.ACME_TIMEOUT,
        ca_bundle=settings.ACME_CA_BUNDLE,
        insecure=settings.ACME_INSECURE,
    )


def contact_for(email: str) -> str:
    """Format an email address as an ACME ``mailto:`` contact."""
    return f"mailto:{email.lower()}"


class AccountSetup:
    def __init__(
        self,
        store: SecretStore,
        events: EventSink,
        resource_namespace: Optional[str] = None,
        client_factory: ClientFactory = default_client_factory,
    ) -> None:
        self.store = store
        self.events = events
        # None means "use the issuer's own namespace"
        self.resource_namespace = resource_namespace
        self.client_factory = client_factory

    def setup(self, ctx: Context, issuer: Issuer) -> IssuerStatus:
        """
        Ensure *issuer* has a verified ACME account and return its new status.

        Raises KeyProvisionError or RegistrationError on failure; the error's
        ``status`` holds the Ready=False status to persist.
        """
        namespace = self.resource_namespace or issuer.namespace
        status = issuer.status

        try:
            key = ensure_account_key(ctx, self.store, issuer, namespace)
        except errors.KeyProvisionError as exc:
            exc.status = _failed(status, exc.message)
            logger.debug("%s: %s", issuer.name, exc.message)
            raise

        try:
            client = self.client_factory(key, issuer)
        except Exception as exc:
            err = errors.RegistrationError(exc)
            err.status = _failed(status, err.message)
            logger.debug("%s: %s", issuer.name, err.message)
            raise err from exc

        logger.debug("%s: verifying existing registration with ACME server", issuer.name)
        try:
            client.get_registration(ctx, status.acme.uri)
        except Exception as exc:
            verify_err = errors.RegistrationVerificationError(exc)
            logger.debug("%s: %s", issuer.name, verify_err.message)
            self.events.emit(issuer, EVENT_TYPE_WARNING, verify_err.reason, verify_err.message)
        else:
            logger.debug("%s: verified existing registration with ACME server", issuer.name)
            return status.with_condition(
                ConditionType.READY,
                ConditionStatus.TRUE,
                errors.REASON_ACCOUNT_VERIFIED,
                errors.MESSAGE_ACCOUNT_VERIFIED,
            )

        registration = Registration(contact=[contact_for(issuer.spec.acme.email)])
        logger.debug("%s: registering new account with ACME server", issuer.name)
        try:
            account = client.register(ctx, registration, agree_tos=True)
        except Exception as exc:
            err = errors.RegistrationError(exc)
            err.status = _failed(status, err.message)
            logger.debug("%s: %s", issuer.name, err.message)
            raise err from exc

        logger.info("%s: registered ACME account %s", issuer.name, account.uri)
        return status.with_condition(
            ConditionType.READY,
            ConditionStatus.TRUE,
            errors.REASON_ACCOUNT_REGISTERED,
            errors.MESSAGE_ACCOUNT_REGISTERED,
        ).with_acme_uri(account.uri)


def _failed(status: IssuerStatus, message: str) -> IssuerStatus:
    return status.with_condition(
        ConditionType.READY,
        ConditionStatus.FALSE,
        errors.REASON_ACCOUNT_REGISTRATION_FAILED,
        message,
    )
