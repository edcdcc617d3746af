"""
Transport layer for issuing API calls.

Provides:
- CallIssuer: interface the player issues calls through
- HTTPCallIssuer: httpx-based issuer for a REST API
- RecordingIssuer: wraps any issuer and feeds a Recorder
"""

from apimacro.transport.base import CallIssuer
from apimacro.transport.http import HTTPCallIssuer
from apimacro.transport.recording import RecordingIssuer

__all__ = ["CallIssuer", "HTTPCallIssuer", "RecordingIssuer"]
