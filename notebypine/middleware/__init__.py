"""
HTTP middleware package.
"""

from notebypine.middleware.rate_limit import RateLimitMiddleware, ToolRateLimiter

__all__ = ["RateLimitMiddleware", "ToolRateLimiter"]
