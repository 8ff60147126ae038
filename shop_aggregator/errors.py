# shop_aggregator/errors.py

"""Exception hierarchy for adapters and the aggregation coordinator."""

from typing import Any


class AggregatorError(Exception):
    """Base class for every error raised inside shop_aggregator."""

    def __init__(
        self,
        message: str,
        error_code: str = "AGGREGATOR_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


# ── Adapter-level errors ─────────────────────────────────


class AdapterError(AggregatorError):
    """A single upstream call failed."""

    def __init__(
        self,
        message: str,
        error_code: str = "ADAPTER_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, error_code, details)


class QuotaExceededError(AdapterError):
    """The quota ledger refused admission for a service."""

    def __init__(self, service_id: str, reason: str = "") -> None:
        super().__init__(
            f"Quota exceeded for {service_id}"
            + (f" ({reason})" if reason else ""),
            "QUOTA_EXCEEDED",
            {"service_id": service_id, "reason": reason},
        )


class CircuitOpenError(AdapterError):
    """The service's circuit breaker is open; no call was made."""

    def __init__(self, service_id: str, retry_after: float = 0.0) -> None:
        super().__init__(
            f"Circuit open for {service_id} "
            f"(retry in {retry_after:.0f}s)",
            "CIRCUIT_OPEN",
            {"service_id": service_id, "retry_after": retry_after},
        )


class RateLimitedError(AdapterError):
    """Upstream answered 429."""

    def __init__(self, service_id: str) -> None:
        super().__init__(
            f"{service_id} rate limited the request",
            "RATE_LIMITED",
            {"service_id": service_id, "status_code": 429},
        )


class AuthenticationFailedError(AdapterError):
    """Upstream rejected the credentials (401/403)."""

    def __init__(self, service_id: str, status_code: int) -> None:
        self.status_code = status_code
        super().__init__(
            f"{service_id} rejected credentials (HTTP {status_code})",
            "AUTHENTICATION_FAILED",
            {"service_id": service_id, "status_code": status_code},
        )


class NetworkError(AdapterError):
    """Timeout or connection loss talking to upstream."""

    def __init__(self, service_id: str, reason: str) -> None:
        super().__init__(
            f"Network error for {service_id}: {reason}",
            "NETWORK_ERROR",
            {"service_id": service_id, "reason": reason},
        )


class DecodeError(AdapterError):
    """Upstream payload was malformed or had an unexpected shape."""

    def __init__(
        self, service_id: str, reason: str, raw_payload: str = "",
    ) -> None:
        self.raw_payload = raw_payload[:500]
        super().__init__(
            f"Could not decode {service_id} response: {reason}",
            "DECODE_ERROR",
            {"service_id": service_id, "reason": reason},
        )


class UpstreamError(AdapterError):
    """Upstream returned an error status or an error payload."""

    def __init__(
        self,
        service_id: str,
        status_code: int | None,
        reason: str = "",
    ) -> None:
        self.status_code = status_code
        label = f"HTTP {status_code}" if status_code else "error payload"
        super().__init__(
            f"{service_id} upstream error ({label})"
            + (f": {reason}" if reason else ""),
            "UPSTREAM_ERROR",
            {"service_id": service_id, "status_code": status_code},
        )


class NotFoundError(AdapterError):
    """A detail lookup referenced an id the service does not know."""

    def __init__(self, service_id: str, product_id: str) -> None:
        super().__init__(
            f"{service_id} has no product '{product_id}'",
            "NOT_FOUND",
            {"service_id": service_id, "product_id": product_id},
        )


# ── Coordinator-level errors ─────────────────────────────


class AllServicesFailedError(AggregatorError):
    """Every requested service failed and no fallback result exists."""

    def __init__(self, query: str, outcomes: list[Any]) -> None:
        self.query = query
        self.outcomes = outcomes
        super().__init__(
            f"All {len(outcomes)} services failed for '{query}'",
            "ALL_SERVICES_FAILED",
            {
                "query": query,
                "services": [o.service_id for o in outcomes],
            },
        )
