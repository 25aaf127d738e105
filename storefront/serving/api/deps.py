"""
API Dependencies
"""

from fastapi import Request

from storefront.reporting import ReportingAggregator


def get_reporting(request: Request) -> ReportingAggregator:
    """The process-wide aggregator created during application startup."""
    return request.app.state.reporting
