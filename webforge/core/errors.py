# webforge/core/errors.py
"""
Error taxonomy of the generation pipeline.

Creation-time errors are raised synchronously and mutate nothing.
Errors inside a job run are caught by the orchestrator and written to the
job record; they never reach a caller.
"""
from typing import Any, Dict, Optional


class PipelineError(Exception):
    code = "PIPELINE_ERROR"
    status_code = 500

    def __init__(self, message: str, raw: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.raw = raw  # raw upstream text for logs, never for users

    def to_http_detail(self) -> Dict[str, Any]:
        return {"success": False, "error": self.message, "code": self.code}


class ValidationError(PipelineError):
    code = "VALIDATION_ERROR"
    status_code = 400


class CreditLimitExceeded(PipelineError):
    code = "CREDIT_LIMIT_EXCEEDED"
    status_code = 402

    def __init__(self, team_id: str, balance_cents: int, amount_cents: int, credit_limit_cents: int):
        super().__init__(
            f"Credit limit exceeded. Current balance: ${balance_cents / 100:.2f}, "
            f"cost: ${amount_cents / 100:.2f}, limit: ${credit_limit_cents / 100:.2f}. "
            "Top up the balance to continue."
        )
        self.team_id = team_id
        self.balance_cents = balance_cents
        self.amount_cents = amount_cents
        self.credit_limit_cents = credit_limit_cents


class ProviderRateLimited(PipelineError):
    code = "RATE_LIMIT"
    status_code = 429


class ProviderPaymentRequired(PipelineError):
    code = "PAYMENT_REQUIRED"
    status_code = 402


class ProviderTimeout(PipelineError):
    code = "TIMEOUT"
    status_code = 504


class ProviderError(PipelineError):
    code = "PROVIDER_ERROR"
    status_code = 502


class NoFilesParsed(PipelineError):
    code = "NO_FILES_PARSED"
    status_code = 502

    def __init__(self, message: str = "Failed to parse generated files", raw: Optional[str] = None):
        super().__init__(message, raw=raw)


class PersistenceError(PipelineError):
    code = "PERSISTENCE_ERROR"
    status_code = 500


class JobNotFound(PipelineError):
    code = "JOB_NOT_FOUND"
    status_code = 404


class JobStateError(PipelineError):
    code = "JOB_STATE"
    status_code = 409
