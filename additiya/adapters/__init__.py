"""
Concrete collaborators plugged into the services.

Storage media for TokenStore, device stand-ins for the photo pipeline, and an
in-process backend used by the demo script and the integration tests.
"""

from .media import FileImagePicker, StaticPermissionGateway
from .simulated_backend import SimulatedBackend
from .storage import InMemoryStorage, JsonFileStorage

__all__ = [
    "FileImagePicker",
    "InMemoryStorage",
    "JsonFileStorage",
    "SimulatedBackend",
    "StaticPermissionGateway",
]
