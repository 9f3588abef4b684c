"""
Validation Exceptions

All exceptions related to request validation

Author: System Architect
Date: 2025-12-14
"""

from search_dispatch.core.exceptions.base import DispatchBaseError


class ValidationError(DispatchBaseError):
    """
    Raised when request validation fails.

    This is the base class for all validation-related errors.
    """
    pass


class InvalidQueryError(ValidationError):
    """
    Raised when the search query is unusable.

    Common causes:
    - Empty or whitespace-only query
    - Query longer than the accepted maximum
    """
    pass
