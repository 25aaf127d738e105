"""
Reporting Errors

Every failure the reporting layer surfaces is one of these kinds; the API
maps each to its own status code.
"""


class ReportingError(Exception):
    """Base class for reporting failures"""

    kind = "reporting_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(ReportingError):
    """No dashboard snapshot has been created yet"""

    kind = "not_found"
    status_code = 404


class InvalidArgumentError(ReportingError):
    """Bad period name, rate or date"""

    kind = "invalid_argument"
    status_code = 400


class UpstreamUnavailableError(ReportingError):
    """A source store failed or timed out; nothing was persisted"""

    kind = "upstream_unavailable"
    status_code = 503


class UnknownBucketError(ReportingError):
    """A record carried a payment method or order status with no bucket (strict mode)"""

    kind = "unknown_bucket"
    status_code = 422
