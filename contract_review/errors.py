from __future__ import annotations


class ApiError(Exception):
    def __init__(
        self,
        *,
        code: str,
        message: str,
        error_class: str,
        retryable: bool,
        http_status: int,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.error_class = error_class
        self.retryable = retryable
        self.http_status = http_status


class InsufficientBalance(ApiError):
    def __init__(self, message: str = "insufficient credit balance") -> None:
        super().__init__(
            code="LEDGER_INSUFFICIENT_BALANCE",
            message=message,
            error_class="business_rule",
            retryable=False,
            http_status=402,
        )


class Forbidden(ApiError):
    def __init__(self, message: str = "caller is not allowed to perform this operation") -> None:
        super().__init__(
            code="AUTH_FORBIDDEN",
            message=message,
            error_class="security_sensitive",
            retryable=False,
            http_status=403,
        )


class Unauthorized(ApiError):
    def __init__(self, message: str = "authentication required") -> None:
        super().__init__(
            code="AUTH_UNAUTHORIZED",
            message=message,
            error_class="security_sensitive",
            retryable=False,
            http_status=401,
        )


class RequestNotPending(ApiError):
    def __init__(self, message: str = "review request is not pending") -> None:
        super().__init__(
            code="REVIEW_REQUEST_NOT_PENDING",
            message=message,
            error_class="business_rule",
            retryable=False,
            http_status=409,
        )


class AnalysisNotReady(ApiError):
    def __init__(self, message: str = "contract analysis is not available yet") -> None:
        super().__init__(
            code="CONTRACT_ANALYSIS_NOT_READY",
            message=message,
            error_class="business_rule",
            retryable=False,
            http_status=409,
        )


class InvalidStateTransition(ApiError):
    def __init__(self, message: str, *, code: str = "WF_STATE_TRANSITION_INVALID") -> None:
        super().__init__(
            code=code,
            message=message,
            error_class="business_rule",
            retryable=False,
            http_status=409,
        )


class AuditorAtCapacity(ApiError):
    def __init__(self, message: str = "auditor has reached the active contract limit") -> None:
        super().__init__(
            code="AUDITOR_AT_CAPACITY",
            message=message,
            error_class="business_rule",
            retryable=False,
            http_status=409,
        )


class Conflict(ApiError):
    def __init__(self, message: str = "transaction lost a concurrent update race") -> None:
        super().__init__(
            code="TX_CONFLICT",
            message=message,
            error_class="transient",
            retryable=True,
            http_status=409,
        )


class AnalysisUnavailable(ApiError):
    def __init__(self, message: str = "contract analysis service unavailable") -> None:
        super().__init__(
            code="ANALYSIS_UNAVAILABLE",
            message=message,
            error_class="upstream",
            retryable=False,
            http_status=503,
        )


class NotFound(ApiError):
    def __init__(self, *, code: str, message: str) -> None:
        super().__init__(
            code=code,
            message=message,
            error_class="validation",
            retryable=False,
            http_status=404,
        )


class ContractNotFound(NotFound):
    def __init__(self) -> None:
        super().__init__(code="CONTRACT_NOT_FOUND", message="contract not found")


class ReviewRequestNotFound(NotFound):
    def __init__(self) -> None:
        super().__init__(code="REVIEW_REQUEST_NOT_FOUND", message="review request not found")


class AccountNotFound(NotFound):
    def __init__(self) -> None:
        super().__init__(code="ACCOUNT_NOT_FOUND", message="account not found")


class PublicReportNotFound(NotFound):
    def __init__(self) -> None:
        super().__init__(code="PUBLIC_REPORT_NOT_FOUND", message="public report not found")


class ValidationFailed(ApiError):
    def __init__(self, message: str) -> None:
        super().__init__(
            code="REQ_VALIDATION_FAILED",
            message=message,
            error_class="validation",
            retryable=False,
            http_status=400,
        )


class IdempotencyConflict(ApiError):
    def __init__(self) -> None:
        super().__init__(
            code="IDEMPOTENCY_CONFLICT",
            message="same key with different payload",
            error_class="validation",
            retryable=False,
            http_status=409,
        )
