"""
Stateful services of the client.

This package contains the components that own state and talk to the backend:
credential storage, the session state machine, profile synchronisation and
the profile photo pipeline.
"""

from .api_transport import ApiResponse, ApiTransport
from .media_upload import ImagePicker, MediaUploadPipeline, PermissionGateway, encode_image
from .profile_sync import ProfileSync, compute_diff
from .session import AuthorizedRequester, EntryNavigator, SessionController
from .token_store import KeyValueStorage, TokenStore

__all__ = [
    "ApiResponse",
    "ApiTransport",
    "AuthorizedRequester",
    "EntryNavigator",
    "ImagePicker",
    "KeyValueStorage",
    "MediaUploadPipeline",
    "PermissionGateway",
    "ProfileSync",
    "SessionController",
    "TokenStore",
    "compute_diff",
    "encode_image",
]
