"""
Error classification and retry policy for outbound catalog requests.

An outbound request outcome (HTTP status, response body, transport failure) is
reduced to an ``ErrorKind``. Each retryable kind maps to a ``RetryPolicy``
describing how many more attempts are allowed and how long to wait before each.

Body inspection is delegated to a ``BodyMarkerDetector`` so detection
heuristics can change without touching the retry or worker logic. The default
detector does literal, case-insensitive substring matching; it is tuned to
miss rather than over-match, since a false CHALLENGE costs a long cooldown.
"""

import random
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Mapping, Optional, Protocol

from omegaconf import DictConfig, OmegaConf

from skuscout.utils.text_processing import contains_any


class ErrorKind(str, Enum):
    RATE_LIMITED = "RATE_LIMITED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    CHALLENGE = "CHALLENGE"
    ACCESS_BLOCKED = "ACCESS_BLOCKED"
    NETWORK = "NETWORK"
    NOT_FOUND = "NOT_FOUND"
    UNKNOWN = "UNKNOWN"


class CatalogError(Exception):
    """
    Classified failure raised by search/extract collaborators.

    Attributes:
        kind: ErrorKind of the failure
        status_code: HTTP status when a response was received
    """

    def __init__(self, kind: ErrorKind, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.kind = ErrorKind(kind)
        self.message = message
        self.status_code = status_code

    def __str__(self):
        return f"{self.kind.value}: {self.message}"


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int
    base_delay: float
    factor: float
    ceiling: float

    def allows_retry(self, attempt: int) -> bool:
        """``attempt`` is the zero-based number of the attempt that just failed."""
        return attempt < self.max_retries

    def delay_for(self, attempt: int, jitter: float = 1.0, rng: Optional[random.Random] = None) -> float:
        """
        Backoff before the retry following ``attempt``.

        delay = min(base_delay * factor ** attempt + uniform(0, jitter), ceiling)
        """
        rng = rng or random
        raw = self.base_delay * (self.factor ** attempt) + rng.uniform(0, jitter)
        return min(raw, self.ceiling)


@dataclass
class OutcomeDescriptor:
    """What came back from one outbound request."""

    status_code: Optional[int] = None
    body: Optional[str] = None
    transport_error: Optional[str] = None
    message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.transport_error is None and self.status_code is not None and 200 <= self.status_code < 300


class BodyMarkerDetector(Protocol):
    def detect(self, body: Optional[str]) -> Optional[ErrorKind]:
        """Return CHALLENGE / ACCESS_BLOCKED when the body is an interstitial, else None."""
        ...


class SubstringMarkerDetector:
    def __init__(self, challenge_markers: Iterable[str] = (), blocked_markers: Iterable[str] = ()):
        self.challenge_markers = list(challenge_markers)
        self.blocked_markers = list(blocked_markers)

    def detect(self, body: Optional[str]) -> Optional[ErrorKind]:
        if contains_any(body, self.challenge_markers):
            return ErrorKind.CHALLENGE
        if contains_any(body, self.blocked_markers):
            return ErrorKind.ACCESS_BLOCKED
        return None


class ErrorClassifier:
    """
    Maps OutcomeDescriptors to ErrorKinds and ErrorKinds to RetryPolicies.

    Classification order:
        429                         -> RATE_LIMITED
        challenge marker in body    -> CHALLENGE
        blocked marker in body      -> ACCESS_BLOCKED
        503                         -> SERVICE_UNAVAILABLE
        404                         -> NOT_FOUND
        known network failure name  -> NETWORK
        anything else but clean 2xx -> UNKNOWN

    Example:
        >>> classifier = ErrorClassifier.from_config(load_config("fetch"))
        >>> classifier.classify(OutcomeDescriptor(status_code=429))
        <ErrorKind.RATE_LIMITED: 'RATE_LIMITED'>
    """

    def __init__(
        self,
        detector: Optional[BodyMarkerDetector] = None,
        network_errors: Iterable[str] = (),
        policies: Optional[Mapping[ErrorKind, RetryPolicy]] = None,
        jitter: float = 1.0,
        rng: Optional[random.Random] = None,
    ):
        self.detector = detector or SubstringMarkerDetector()
        self.network_errors = {name.lower() for name in network_errors}
        self.policies: Dict[ErrorKind, RetryPolicy] = dict(policies or {})
        self.jitter = jitter
        self.rng = rng or random.Random()

    @classmethod
    def from_config(cls, config: DictConfig, detector: Optional[BodyMarkerDetector] = None, rng=None):
        """Build from the ``classifier`` and ``retry`` sections of fetch.yaml."""
        classifier_cfg = config.classifier
        retry_cfg = config.retry
        policies = {
            ErrorKind(kind): RetryPolicy(**OmegaConf.to_container(values))
            for kind, values in retry_cfg.policies.items()
        }
        detector = detector or SubstringMarkerDetector(
            challenge_markers=classifier_cfg.challenge_markers,
            blocked_markers=classifier_cfg.blocked_markers,
        )
        return cls(
            detector=detector,
            network_errors=classifier_cfg.network_errors,
            policies=policies,
            jitter=retry_cfg.jitter,
            rng=rng,
        )

    def classify(self, outcome: OutcomeDescriptor) -> Optional[ErrorKind]:
        """
        Classify one outcome.

        Returns:
            The ErrorKind, or None for a clean 2xx response
        """
        status = outcome.status_code

        if status == 429:
            return ErrorKind.RATE_LIMITED

        marker_kind = self.detector.detect(outcome.body)
        if marker_kind is not None:
            return marker_kind

        if status == 503:
            return ErrorKind.SERVICE_UNAVAILABLE
        if status == 404:
            return ErrorKind.NOT_FOUND

        if outcome.transport_error is not None:
            if outcome.transport_error.lower() in self.network_errors:
                return ErrorKind.NETWORK
            return ErrorKind.UNKNOWN

        if outcome.succeeded:
            return None
        return ErrorKind.UNKNOWN

    def policy_for(self, kind: ErrorKind) -> Optional[RetryPolicy]:
        return self.policies.get(ErrorKind(kind))

    def is_retryable(self, kind: ErrorKind, attempt: int) -> bool:
        policy = self.policy_for(kind)
        return policy is not None and policy.allows_retry(attempt)

    def retry_delay(self, kind: ErrorKind, attempt: int) -> float:
        policy = self.policy_for(kind)
        if policy is None:
            return 0.0
        return policy.delay_for(attempt, jitter=self.jitter, rng=self.rng)

    def to_error(self, kind: ErrorKind, outcome: OutcomeDescriptor, context: str = "") -> CatalogError:
        """Wrap a classified outcome in a CatalogError."""
        detail = outcome.message or outcome.transport_error or (f"HTTP {outcome.status_code}" if outcome.status_code else "no response")
        message = f"{context}: {detail}" if context else detail
        return CatalogError(kind, message, status_code=outcome.status_code)
