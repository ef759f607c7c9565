"""
Key/secret storage for issuer account keys.

A secret is a small mapping of entry name to bytes (``{"tls.key": b"..."}``),
addressed by (namespace, name).  Stores offer two operations only:

  get(ctx, namespace, name)                      → data, or SecretNotFoundError
  create_if_absent(ctx, namespace, name, data)   → data, or SecretExistsError

There is no update: account keys are created once and never overwritten.

Filesystem layout:
  <root>/<namespace>/<name>.json   {"data": {"tls.key": "<base64>"}} (mode 0o600)
"""
from __future__ import annotations

import base64
import json
import re
import threading
from pathlib import Path
from typing import Dict, Protocol, Tuple

from issuer.context import Context
from storage.atomic import atomic_create_bytes

TLS_PRIVATE_KEY_KEY = "tls.key"

# DNS-1123 subdomain, as used for namespace and secret names
_NAME_RE = re.compile(r"^[a-z0-9]([-a-z0-9.]*[a-z0-9])?$")

SecretData = Dict[str, bytes]


class SecretStoreError(Exception):
    """Raised when the secret store cannot complete a request."""


class SecretNotFoundError(SecretStoreError):
    """Raised when the requested secret does not exist."""

    def __init__(self, namespace: str, name: str) -> None:
        self.namespace = namespace
        self.name = name
        super().__init__(f'secret "{namespace}/{name}" not found')


class SecretExistsError(SecretStoreError):
    """Raised by create_if_absent when another writer created the secret first."""

    def __init__(self, namespace: str, name: str) -> None:
        self.namespace = namespace
        self.name = name
        super().__init__(f'secret "{namespace}/{name}" already exists')


class SecretStore(Protocol):
    def get(self, ctx: Context, namespace: str, name: str) -> SecretData:
        ...

    def create_if_absent(
        self, ctx: Context, namespace: str, name: str, data: SecretData
    ) -> SecretData:
        ...


def _validate_ref(namespace: str, name: str) -> None:
    for label, value in (("namespace", namespace), ("name", name)):
        if not value or len(value) > 253 or not _NAME_RE.match(value):
            raise SecretStoreError(f"invalid secret {label} {value!r}")


class FilesystemSecretStore:
    """Secrets persisted as one JSON file each under *root*."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def path_for(self, namespace: str, name: str) -> Path:
        _validate_ref(namespace, name)
        return self.root / namespace / f"{name}.json"

    def get(self, ctx: Context, namespace: str, name: str) -> SecretData:
        ctx.check()
        path = self.path_for(namespace, name)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            raise SecretNotFoundError(namespace, name) from None
        except OSError as exc:
            raise SecretStoreError(f'reading secret "{namespace}/{name}": {exc}') from exc
        return _decode(raw, namespace, name)

    def create_if_absent(
        self, ctx: Context, namespace: str, name: str, data: SecretData
    ) -> SecretData:
        ctx.check()
        path = self.path_for(namespace, name)
        try:
            atomic_create_bytes(path, _encode(data))
        except FileExistsError:
            raise SecretExistsError(namespace, name) from None
        except OSError as exc:
            raise SecretStoreError(f'creating secret "{namespace}/{name}": {exc}') from exc
        return dict(data)


class MemorySecretStore:
    """Process-local store, mainly for tests and dry runs."""

    def __init__(self) -> None:
        self._secrets: Dict[Tuple[str, str], SecretData] = {}
        self._lock = threading.Lock()
        self.creates = 0

    def get(self, ctx: Context, namespace: str, name: str) -> SecretData:
        ctx.check()
        with self._lock:
            try:
                return dict(self._secrets[(namespace, name)])
            except KeyError:
                raise SecretNotFoundError(namespace, name) from None

    def create_if_absent(
        self, ctx: Context, namespace: str, name: str, data: SecretData
    ) -> SecretData:
        ctx.check()
        _validate_ref(namespace, name)
        with self._lock:
            if (namespace, name) in self._secrets:
                raise SecretExistsError(namespace, name)
            self._secrets[(namespace, name)] = dict(data)
            self.creates += 1
        return dict(data)


# ─── Internal ──────────────────────────────────────────────────────────────────


def _encode(data: SecretData) -> bytes:
    doc = {"data": {k: base64.b64encode(v).decode() for k, v in data.items()}}
    return json.dumps(doc, indent=2, sort_keys=True).encode()


def _decode(raw: bytes, namespace: str, name: str) -> SecretData:
    try:
        doc = json.loads(raw)
        return {k: base64.b64decode(v) for k, v in doc["data"].items()}
    except (ValueError, KeyError, TypeError, AttributeError) as exc:
        raise SecretStoreError(f'secret "{namespace}/{name}" is corrupt: {exc}') from exc
