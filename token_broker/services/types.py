"""
Type definitions for the token exchange.

The broker never raises to signal a rejected exchange. It returns an
ExchangeFailure whose kind the HTTP layer maps to a status code.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

from token_broker.models.github_api import IssuedCredential


class ExchangeState(str, Enum):
    """Progress of a single exchange through the verification pipeline."""

    RECEIVED = "received"
    BASIC_VERIFIED = "basic_verified"
    INSTALLATION_RESOLVED = "installation_resolved"
    REF_VERIFIED = "ref_verified"
    MINTED = "minted"


class FailureKind(str, Enum):
    UNAUTHORIZED = "unauthorized"
    UPSTREAM_FAILURE = "upstream_failure"


class VerificationPhase(str, Enum):
    BASIC = "basic"
    REF = "ref"


@dataclass(frozen=True)
class ClaimMismatch:
    """A claim that did not match its expected value. Logged, never returned."""

    phase: VerificationPhase
    field: str
    expected: Optional[str] = None
    actual: Any = None

    def describe(self) -> str:
        return f"{self.phase.value} claim '{self.field}' mismatch: expected {self.expected!r}, got {self.actual!r}"


@dataclass(frozen=True)
class ExchangeFailure:
    kind: FailureKind
    state: ExchangeState
    reason: str


ExchangeResult = Union[IssuedCredential, ExchangeFailure]
