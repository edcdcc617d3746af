"""
Base call issuer interface.

The player hands every substituted call to an issuer. Plain callables with the
same signature are accepted too.
"""

from abc import ABC, abstractmethod
from typing import Any


class CallIssuer(ABC):
    """
    Abstract base class for issuing API calls.

    Implementations:
    - HTTPCallIssuer: Issue calls over HTTP with httpx
    - RecordingIssuer: Record calls made through another issuer
    """

    @abstractmethod
    async def issue(self, method: str, path: str, payload: Any = None) -> Any:
        """
        Issue one API call.

        Args:
            method: HTTP method name ("GET", "POST", ...)
            path: Request path, already substituted
            payload: Request body or query parameters

        Returns:
            CallResponse, or the raw response data

        Raises:
            CallExecutionError: If the call could not be made

        Example:
            response = await issuer.issue("GET", "/api/haproxy/settings/get")
        """
        pass
