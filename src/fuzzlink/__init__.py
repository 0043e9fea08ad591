"""Client transport for a remote fuzzing server: auth, bundle upload, runs."""

__version__ = "0.1.0"

from fuzzlink.client import APIClient
from fuzzlink.errors import (
    APIConnectionError,
    APIError,
    ErrorKind,
    FuzzlinkError,
    LocalIOError,
    ProtocolViolationError,
    SignalInterruptedError,
)
from fuzzlink.models import Artifact, Project

__all__ = [
    "APIClient",
    "APIConnectionError",
    "APIError",
    "Artifact",
    "ErrorKind",
    "FuzzlinkError",
    "LocalIOError",
    "Project",
    "ProtocolViolationError",
    "SignalInterruptedError",
    "__version__",
]
