"""
ACME RFC 8555 account client.

A client is bound to one account key and one directory URL, mirroring how the
issuer account setup uses it: look up the registration recorded in the issuer
status, or register a new account.  Every request takes a Context and derives
its HTTP timeout from it, so the caller's deadline reaches the network layer.

RFC 8555 compliance notes
--------------------------
* Account lookup is a signed POST of ``{}`` to the account URL (kid form),
  which returns the current account object (§7.3.2).
* Registration is a signed POST to ``newAccount`` (jwk form).  A server that
  already knows the key answers 200 with the existing account's Location, so
  registering twice with the same key is harmless.
* badNonce retry: ACME servers return a fresh ``Replay-Nonce`` header even on
  error responses.  ``_post_signed`` retries up to ``_NONCE_RETRIES`` times.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from josepy.jwk import JWKRSA
import requests

from acme import jws as jwslib
from issuer.context import Context

_NONCE_RETRIES = 3

USER_AGENT = "issuer-account-setup/1.0"

KNOWN_DIRECTORIES = {
    "letsencrypt":         "https://acme-v02.api.letsencrypt.org/directory",
    "letsencrypt_staging": "https://acme-staging-v02.api.letsencrypt.org/directory",
    "buypass":             "https://api.buypass.com/acme/directory",
    "buypass_test":        "https://api.test4.buypass.no/acme/directory",
    "zerossl":             "https://acme.zerossl.com/v2/DV90",
    "google":              "https://dv.acme-v02.api.pki.goog/directory",
    "google_test":         "https://dv.acme-v02.test-api.pki.goog/directory",
    "digicert":            "https://acme.digicert.com/v2/DV/directory",
    "sectigo":             "https://acme.sectigo.com/v2/DV",
}


def resolve_directory_url(server: str) -> str:
    """Map a known CA name to its directory URL; URLs pass through unchanged."""
    return KNOWN_DIRECTORIES.get(server.strip().lower(), server)


class AcmeError(Exception):
    """Raised when the ACME server returns an error response."""

    def __init__(self, status_code: int, body: dict, new_nonce: str = "") -> None:
        self.status_code = status_code
        self.body = body
        self.new_nonce = new_nonce
        problem_type = body.get("type", "unknown")
        detail = body.get("detail", str(body))
        super().__init__(f"ACME {status_code}: {problem_type}: {detail}")


@dataclass
class Registration:
    """An ACME account object as seen by the client."""

    uri: str = ""
    contact: list[str] = field(default_factory=list)
    status: str = ""
    terms_of_service_agreed: bool = False


class AcmeClient:
    def __init__(
        self,
        key: JWKRSA,
        directory_url: str,
        eab_key_id: str = "",
        eab_hmac_key: str = "",
        timeout: float = 30,
        ca_bundle: str = "",
        insecure: bool = False,
    ) -> None:
        self.key = key
        self.directory_url = resolve_directory_url(directory_url)
        self.eab_key_id = eab_key_id
        self.eab_hmac_key = eab_hmac_key
        self.timeout = timeout
        self._directory: Optional[dict] = None
        self._nonce: Optional[str] = None
        self._session = requests.Session()
        self._session.headers.update({"User-Agent": USER_AGENT})

        if insecure:
            import urllib3
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
            self._session.verify = False
        elif ca_bundle:
            self._session.verify = ca_bundle

    # ── Directory & nonce ─────────────────────────────────────────────────

    def get_directory(self, ctx: Context) -> dict:
        """GET /directory, cached for the lifetime of the client."""
        if self._directory is None:
            resp = self._session.get(self.directory_url, timeout=ctx.timeout(self.timeout))
            resp.raise_for_status()
            self._directory = resp.json()
        return self._directory

    def get_nonce(self, ctx: Context) -> str:
        """Return the nonce saved from the last response, or HEAD /newNonce."""
        if self._nonce:
            nonce, self._nonce = self._nonce, None
            return nonce
        directory = self.get_directory(ctx)
        resp = self._session.head(directory["newNonce"], timeout=ctx.timeout(self.timeout))
        nonce = resp.headers.get("Replay-Nonce")
        if not nonce:
            raise AcmeError(resp.status_code, {"detail": "No Replay-Nonce header"})
        return nonce

    # ── Account ───────────────────────────────────────────────────────────

    def get_registration(self, ctx: Context, uri: str) -> Registration:
        """
        Fetch the account at *uri* and confirm it is still usable.

        Raises AcmeError when no URI is given, when the server rejects the
        lookup, or when the account is deactivated or revoked.
        """
        if not uri:
            raise AcmeError(
                0,
                {
                    "type": "urn:ietf:params:acme:error:accountDoesNotExist",
                    "detail": "no registration URI on record",
                },
            )
        resp = self._post_signed(ctx, {}, uri, account_url=uri)
        body = resp.json()
        status = body.get("status", "valid")
        if status != "valid":
            raise AcmeError(
                resp.status_code,
                {
                    "type": "urn:ietf:params:acme:error:unauthorized",
                    "detail": f"account {uri} is {status}",
                },
            )
        return _registration_from(uri, body)

    def register(
        self,
        ctx: Context,
        registration: Registration,
        agree_tos: bool = True,
    ) -> Registration:
        """
        POST /newAccount with the registration's contacts.

        External account binding is attached when EAB credentials are set.
        Returns the registration as stored by the server, with ``uri`` taken
        from the Location header.
        """
        directory = self.get_directory(ctx)
        new_account_url = directory["newAccount"]
        payload: dict = {
            "contact": list(registration.contact),
            "termsOfServiceAgreed": agree_tos,
        }

        if self.eab_key_id and self.eab_hmac_key:
            payload["externalAccountBinding"] = jwslib.create_eab_jws(
                self.key, self.eab_key_id, self.eab_hmac_key, new_account_url
            )

        resp = self._post_signed(ctx, payload, new_account_url)
        uri = resp.headers.get("Location", "")
        if not uri:
            raise AcmeError(resp.status_code, {"detail": "newAccount response has no Location header"})
        try:
            body = resp.json()
        except ValueError:
            body = {}
        return _registration_from(uri, body)

    # ── Internal ──────────────────────────────────────────────────────────

    def _post_signed(
        self,
        ctx: Context,
        payload: dict | None,
        url: str,
        account_url: str | None = None,
    ) -> requests.Response:
        """
        Sign *payload* with the account key and POST to *url*, retrying up to
        `_NONCE_RETRIES` times on `badNonce` responses.
        """
        nonce = self.get_nonce(ctx)
        for attempt in range(_NONCE_RETRIES):
            body = jwslib.sign_request(payload, self.key, nonce, url, account_url)
            resp = self._session.post(
                url,
                json=body,
                headers={
                    "Content-Type": "application/jose+json",
                    "Accept": "application/json",
                },
                timeout=ctx.timeout(self.timeout),
            )
            fresh = resp.headers.get("Replay-Nonce")
            if resp.ok:
                self._nonce = fresh
                return resp

            try:
                error_body = resp.json()
            except ValueError:
                error_body = {"detail": resp.text}

            if "badNonce" in error_body.get("type", "") and attempt < _NONCE_RETRIES - 1:
                nonce = fresh or self.get_nonce(ctx)
                continue

            self._nonce = fresh
            raise AcmeError(resp.status_code, error_body, fresh or "")

        # Unreachable: the last attempt either returns or raises
        raise AcmeError(0, {"detail": "Exceeded nonce retry limit"})


def _registration_from(uri: str, body: dict) -> Registration:
    return Registration(
        uri=uri,
        contact=list(body.get("contact", [])),
        status=body.get("status", ""),
        terms_of_service_agreed=bool(body.get("termsOfServiceAgreed", False)),
    )
