"""
Shared pytest fixtures.

FakeAcmeClient
--------------
Stands in for acme.client.AcmeClient inside AccountSetup tests.  It records
every call so tests can assert on what reached the "authority" (and what
did not), and is configured per test with the registrations it knows and the
errors it should raise.
"""
from __future__ import annotations

from typing import Dict, List, Optional

import pytest

from acme import jws as jwslib
from acme.client import AcmeError, Registration
from issuer.context import Context
from issuer.events import RecordingEventSink
from issuer.models import Issuer
from issuer.setup import AccountSetup
from storage.secrets import MemorySecretStore


# ─── Keys ─────────────────────────────────────────────────────────────────────

@pytest.fixture(scope="session")
def account_key():
    return jwslib.generate_account_key()


# ─── Fake authority ───────────────────────────────────────────────────────────

class FakeAcmeClient:
    def __init__(
        self,
        known: Optional[Dict[str, Registration]] = None,
        register_uri: str = "https://ca.example/acct/42",
        lookup_error: Optional[Exception] = None,
        register_error: Optional[Exception] = None,
    ) -> None:
        self.known = dict(known or {})
        self.register_uri = register_uri
        self.lookup_error = lookup_error
        self.register_error = register_error
        self.key = None
        self.directory_url = ""
        self.lookups: List[str] = []
        self.registrations: List[Registration] = []

    def get_registration(self, ctx: Context, uri: str) -> Registration:
        ctx.check()
        self.lookups.append(uri)
        if self.lookup_error is not None:
            raise self.lookup_error
        if uri not in self.known:
            raise AcmeError(
                0 if not uri else 400,
                {
                    "type": "urn:ietf:params:acme:error:accountDoesNotExist",
                    "detail": "no registration URI on record" if not uri else f"unknown account {uri}",
                },
            )
        return self.known[uri]

    def register(self, ctx: Context, registration: Registration, agree_tos: bool = True) -> Registration:
        ctx.check()
        self.registrations.append(registration)
        if self.register_error is not None:
            raise self.register_error
        account = Registration(
            uri=self.register_uri,
            contact=list(registration.contact),
            status="valid",
            terms_of_service_agreed=agree_tos,
        )
        self.known[account.uri] = account
        return account

    @property
    def network_calls(self) -> int:
        return len(self.lookups) + len(self.registrations)


@pytest.fixture()
def fake_client():
    return FakeAcmeClient()


# ─── Issuers & collaborators ──────────────────────────────────────────────────

def _make_issuer(
    name: str = "letsencrypt",
    namespace: str = "default",
    email: str = "ops@example.com",
    uri: str = "",
    private_key: str = "letsencrypt-account-key",
    server: str = "https://ca.example/directory",
) -> Issuer:
    return Issuer.model_validate({
        "name": name,
        "namespace": namespace,
        "spec": {
            "acme": {
                "server": server,
                "email": email,
                "privateKey": private_key,
            },
        },
        "status": {"acme": {"uri": uri}},
    })


@pytest.fixture()
def make_issuer():
    return _make_issuer


@pytest.fixture()
def store():
    return MemorySecretStore()


@pytest.fixture()
def events():
    return RecordingEventSink()


@pytest.fixture()
def ctx():
    return Context.background()


@pytest.fixture()
def reconciler(store, events, fake_client):
    """AccountSetup wired to the in-memory store, recording sink and fake client."""
    built = []

    def factory(key, issuer):
        fake_client.key = key
        fake_client.directory_url = issuer.spec.acme.server
        built.append(key)
        return fake_client

    setup = AccountSetup(store=store, events=events, client_factory=factory)
    setup.clients_built = built
    return setup
