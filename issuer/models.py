"""
Issuer resource model.

An Issuer is declared by a user; account setup reads its spec and produces a
new IssuerStatus.  Every model here is frozen: status updates return a copy
with fields replaced, leaving the caller's object untouched so it can write
the result back with optimistic concurrency and retry on conflict.
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ConditionStatus(str, Enum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class ConditionType:
    READY = "Ready"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class ExternalAccountBinding(_Frozen):
    """EAB credentials issued out-of-band by CAs that require them."""

    key_id: str = Field(alias="keyID")
    hmac_key: str = Field(alias="hmacKey")


class ACMEIssuer(_Frozen):
    server: str
    email: str = ""
    private_key: str = Field(alias="privateKey")
    external_account_binding: Optional[ExternalAccountBinding] = Field(
        default=None, alias="externalAccountBinding"
    )

    @field_validator("server", "private_key")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v.strip()


class IssuerSpec(_Frozen):
    acme: ACMEIssuer


class IssuerCondition(_Frozen):
    type: str
    status: ConditionStatus = ConditionStatus.UNKNOWN
    reason: str = ""
    message: str = ""
    last_transition_time: Optional[datetime] = Field(default=None, alias="lastTransitionTime")


class ACMEIssuerStatus(_Frozen):
    uri: str = ""


class IssuerStatus(_Frozen):
    conditions: Tuple[IssuerCondition, ...] = ()
    acme: ACMEIssuerStatus = ACMEIssuerStatus()

    def condition(self, type_: str) -> Optional[IssuerCondition]:
        for cond in self.conditions:
            if cond.type == type_:
                return cond
        return None

    @property
    def ready(self) -> Optional[IssuerCondition]:
        return self.condition(ConditionType.READY)

    def with_condition(
        self,
        type_: str,
        status: ConditionStatus,
        reason: str,
        message: str,
        now: Optional[datetime] = None,
    ) -> "IssuerStatus":
        """
        Return a copy with condition *type_* set.

        The transition time only moves when the status value changes.
        """
        now = now or datetime.now(tz=timezone.utc)
        existing = self.condition(type_)
        transition = now
        if existing is not None and existing.status == status and existing.last_transition_time:
            transition = existing.last_transition_time

        new = IssuerCondition(
            type=type_,
            status=status,
            reason=reason,
            message=message,
            last_transition_time=transition,
        )
        others = tuple(c for c in self.conditions if c.type != type_)
        return self.model_copy(update={"conditions": others + (new,)})

    def with_acme_uri(self, uri: str) -> "IssuerStatus":
        return self.model_copy(update={"acme": self.acme.model_copy(update={"uri": uri})})


class Issuer(_Frozen):
    name: str
    namespace: str = "default"
    spec: IssuerSpec
    status: IssuerStatus = IssuerStatus()

    @classmethod
    def from_manifest(cls, doc: dict) -> "Issuer":
        """Build an Issuer from a Kubernetes-style manifest dict."""
        metadata = doc.get("metadata", {})
        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace") or "default",
            spec=doc.get("spec", {}),
            status=doc.get("status") or {},
        )
