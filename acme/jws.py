"""
JWK / JWS / EAB utilities for the ACME protocol (RFC 8555).

Uses *josepy* (the library powering Certbot) for the JWK representation.

Responsibilities:
  - Generate the **account** RSA key and convert it to/from PKCS#1 PEM
  - Sign ACME POST bodies as JWS (with jwk or kid header)
  - Build the EAB outer-JWS for CAs that require external account binding
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import json
from typing import Any

from josepy.jwk import JWKRSA
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

ACCOUNT_KEY_SIZE = 2048


# ─── Account key encoding ─────────────────────────────────────────────────────


def generate_account_key(key_size: int = ACCOUNT_KEY_SIZE) -> JWKRSA:
    """Generate a new RSA account key wrapped in a josepy JWKRSA."""
    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=key_size,
        backend=default_backend(),
    )
    return JWKRSA(key=private_key)


def encode_account_key(jwk: JWKRSA) -> bytes:
    """Serialize the account key as an unencrypted PKCS#1 PEM block."""
    return jwk.key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )


def decode_account_key(pem: bytes) -> JWKRSA:
    """
    Load an RSA account key from PEM bytes.

    Raises ValueError when the data is not a PEM private key or is not RSA.
    """
    private_key = serialization.load_pem_private_key(pem, password=None, backend=default_backend())
    if not isinstance(private_key, rsa.RSAPrivateKey):
        raise ValueError(f"account key must be RSA, got {type(private_key).__name__}")
    return JWKRSA(key=private_key)


def public_jwk(jwk: JWKRSA) -> dict[str, Any]:
    pub = jwk.public_key().fields_to_partial_json()
    pub["kty"] = "RSA"
    return pub


# ─── JWS signing ─────────────────────────────────────────────────────────────


def sign_request(
    payload: dict | None,
    account_key: JWKRSA,
    nonce: str,
    url: str,
    account_url: str | None = None,
) -> dict:
    """
    Sign an ACME request payload and return the JWS dict to POST.

    If *account_url* is None the JWS header uses the full JWK (used for
    newAccount).  If *account_url* is set the header uses the shorter "kid"
    form (used for all subsequent requests).
    """
    header: dict[str, Any] = {
        "alg": "RS256",
        "nonce": nonce,
        "url": url,
    }
    if account_url:
        header["kid"] = account_url
    else:
        header["jwk"] = public_jwk(account_key)

    protected = _b64url(json.dumps(header).encode())
    if payload is None:
        payload_b64 = ""
    else:
        payload_b64 = _b64url(json.dumps(payload).encode())

    signing_input = f"{protected}.{payload_b64}".encode()
    signature = _sign_rsa(account_key, signing_input)

    return {
        "protected": protected,
        "payload": payload_b64,
        "signature": _b64url(signature),
    }


# ─── EAB (External Account Binding) ──────────────────────────────────────────


def create_eab_jws(
    account_jwk: JWKRSA,
    eab_kid: str,
    eab_hmac_key_b64url: str,
    new_account_url: str,
) -> dict:
    """
    Build the EAB outer-JWS (RFC 8555 §7.3.4).

      - Protected header: {"alg":"HS256","kid":<eab_kid>,"url":<newAccount url>}
      - Payload: the account public JWK
      - Signature: HMAC-SHA256 keyed with the decoded EAB HMAC key

    Raises ValueError if the key ID is empty, the HMAC key is not valid
    base64url, or the decoded HMAC key is shorter than 16 bytes.
    """
    if not eab_kid or not eab_kid.strip():
        raise ValueError("EAB key ID (eab_kid) cannot be empty")

    if not eab_hmac_key_b64url or not eab_hmac_key_b64url.strip():
        raise ValueError("EAB HMAC key (eab_hmac_key_b64url) cannot be empty")

    try:
        hmac_key = _b64url_decode(eab_hmac_key_b64url)
    except Exception as exc:
        raise ValueError(
            f"EAB HMAC key is not valid base64url: {exc!s}. "
            f"Must be base64url-encoded bytes."
        ) from exc

    if len(hmac_key) < 16:
        raise ValueError(
            f"EAB HMAC key is too short: {len(hmac_key)} bytes. "
            f"Must be at least 16 bytes (128 bits)."
        )

    eab_header = {
        "alg": "HS256",
        "kid": eab_kid,
        "url": new_account_url,
    }
    protected = _b64url(json.dumps(eab_header).encode())
    payload = _b64url(json.dumps(public_jwk(account_jwk)).encode())

    signing_input = f"{protected}.{payload}".encode()
    mac = hmac.new(hmac_key, signing_input, hashlib.sha256).digest()

    return {
        "protected": protected,
        "payload": payload,
        "signature": _b64url(mac),
    }


# ─── Internal helpers ─────────────────────────────────────────────────────────


def _b64url(data: bytes) -> str:
    """URL-safe base64 encoding with no padding (as required by JOSE)."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


def _b64url_decode(s: str) -> bytes:
    """URL-safe base64 decode, adding padding as needed."""
    pad = 4 - len(s) % 4
    if pad != 4:
        s += "=" * pad
    return base64.urlsafe_b64decode(s)


def _sign_rsa(jwk: JWKRSA, data: bytes) -> bytes:
    """Sign *data* with the RSA private key using PKCS1v15 + SHA-256."""
    from cryptography.hazmat.primitives.asymmetric import padding
    from cryptography.hazmat.primitives import hashes

    return jwk.key.sign(data, padding.PKCS1v15(), hashes.SHA256())
