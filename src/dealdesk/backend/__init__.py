"""Remote operations API layer -- backend contract, HTTP client, wire mappings.

Provides the abstract OperationsBackend interface and HttpOperationsBackend,
the httpx implementation used against the live API. field_mapping converts
between the API's PascalCase records and the wizard's internal models.
"""

from src.dealdesk.backend.adapter import OperationsBackend
from src.dealdesk.backend.errors import (
    BackendError,
    BackendRejectedError,
    BackendUnavailableError,
)
from src.dealdesk.backend.http import HttpOperationsBackend

__all__ = [
    "OperationsBackend",
    "HttpOperationsBackend",
    "BackendError",
    "BackendRejectedError",
    "BackendUnavailableError",
]
