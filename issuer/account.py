"""
Account key provisioning.

The issuer's ACME account key lives PEM-encoded under ``tls.key`` in the
secret named by ``spec.acme.privateKey``.  It is created once, never
overwritten and never rotated here.
"""
from __future__ import annotations

import logging

from josepy.jwk import JWKRSA

from acme import jws as jwslib
from issuer.context import Context
from issuer.errors import KeyProvisionError
from issuer.models import Issuer
from storage.secrets import (
    TLS_PRIVATE_KEY_KEY,
    SecretData,
    SecretExistsError,
    SecretNotFoundError,
    SecretStore,
)

logger = logging.getLogger(__name__)


def ensure_account_key(
    ctx: Context,
    store: SecretStore,
    issuer: Issuer,
    namespace: str,
) -> JWKRSA:
    """
    Return the issuer's account key, generating and persisting one if absent.

    Raises KeyProvisionError for any failure other than the key not existing
    yet.  Never retries.
    """
    name = issuer.spec.acme.private_key

    logger.debug("%s: getting acme account private key '%s/%s'", issuer.name, namespace, name)
    try:
        return _key_from_secret(store.get(ctx, namespace, name), namespace, name)
    except SecretNotFoundError:
        pass
    except KeyProvisionError:
        raise
    except Exception as exc:
        raise KeyProvisionError(exc) from exc

    logger.debug("%s: generating acme account private key '%s/%s'", issuer.name, namespace, name)
    try:
        return _create_account_key(ctx, store, namespace, name)
    except KeyProvisionError:
        raise
    except Exception as exc:
        raise KeyProvisionError(exc) from exc


def _create_account_key(
    ctx: Context,
    store: SecretStore,
    namespace: str,
    name: str,
) -> JWKRSA:
    key = jwslib.generate_account_key()
    try:
        store.create_if_absent(ctx, namespace, name, {TLS_PRIVATE_KEY_KEY: jwslib.encode_account_key(key)})
    except SecretExistsError:
        # Lost a create race; the winner's key is the account key
        logger.info("Account key secret '%s/%s' was created concurrently, using it", namespace, name)
        return _key_from_secret(store.get(ctx, namespace, name), namespace, name)
    logger.info("Created acme account private key '%s/%s'", namespace, name)
    return key


def _key_from_secret(data: SecretData, namespace: str, name: str) -> JWKRSA:
    pem = data.get(TLS_PRIVATE_KEY_KEY)
    if not pem:
        raise KeyProvisionError(f'secret "{namespace}/{name}" has no "{TLS_PRIVATE_KEY_KEY}" entry')
    try:
        return jwslib.decode_account_key(pem)
    except (ValueError, TypeError) as exc:
        raise KeyProvisionError(f'secret "{namespace}/{name}" holds an invalid private key: {exc}') from exc
