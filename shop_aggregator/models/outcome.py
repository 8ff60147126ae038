# shop_aggregator/models/outcome.py

"""Tagged success-or-failure result of one gated adapter call."""

from dataclasses import dataclass, field
from enum import Enum

from shop_aggregator.errors import (
    AdapterError,
    AuthenticationFailedError,
    CircuitOpenError,
    DecodeError,
    NetworkError,
    NotFoundError,
    QuotaExceededError,
    RateLimitedError,
    UpstreamError,
)
from shop_aggregator.models.product import Product


class FailureKind(str, Enum):
    """Why an adapter call produced no products."""

    QUOTA_EXCEEDED = "quota_exceeded"
    CIRCUIT_OPEN = "circuit_open"
    RATE_LIMITED = "rate_limited"
    AUTHENTICATION_FAILED = "authentication_failed"
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    DECODE_ERROR = "decode_error"
    UPSTREAM_ERROR = "upstream_error"
    NOT_FOUND = "not_found"
    UNKNOWN_SERVICE = "unknown_service"


_ERROR_KINDS: list[tuple[type[AdapterError], FailureKind]] = [
    (QuotaExceededError, FailureKind.QUOTA_EXCEEDED),
    (CircuitOpenError, FailureKind.CIRCUIT_OPEN),
    (RateLimitedError, FailureKind.RATE_LIMITED),
    (AuthenticationFailedError, FailureKind.AUTHENTICATION_FAILED),
    (NetworkError, FailureKind.NETWORK_ERROR),
    (DecodeError, FailureKind.DECODE_ERROR),
    (UpstreamError, FailureKind.UPSTREAM_ERROR),
    (NotFoundError, FailureKind.NOT_FOUND),
]


@dataclass
class AdapterOutcome:
    """Result of one invocation against one service."""

    service_id: str
    products: list[Product] = field(
        default_factory=lambda: list[Product]()
    )
    failure: FailureKind | None = None
    message: str = ""
    status_code: int | None = None
    from_cache: bool = False
    elapsed_ms: float = 0.0

    @property
    def ok(self) -> bool:
        """True when the call produced a (possibly empty) product list."""
        return self.failure is None

    @classmethod
    def success(
        cls,
        service_id: str,
        products: list[Product],
        from_cache: bool = False,
    ) -> "AdapterOutcome":
        return cls(
            service_id=service_id,
            products=list(products),
            from_cache=from_cache,
        )

    @classmethod
    def failed(
        cls,
        service_id: str,
        failure: FailureKind,
        message: str = "",
        status_code: int | None = None,
    ) -> "AdapterOutcome":
        return cls(
            service_id=service_id,
            failure=failure,
            message=message,
            status_code=status_code,
        )

    @classmethod
    def from_error(
        cls, service_id: str, error: AdapterError,
    ) -> "AdapterOutcome":
        """Translate a typed adapter exception into a failure outcome."""
        kind = FailureKind.UPSTREAM_ERROR
        for error_cls, mapped in _ERROR_KINDS:
            if isinstance(error, error_cls):
                kind = mapped
                break
        status = error.details.get("status_code")
        return cls.failed(
            service_id,
            kind,
            message=error.message,
            status_code=status if isinstance(status, int) else None,
        )
