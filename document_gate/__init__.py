"""
Document Gate

Email-gated access to a single portfolio document.

Provides:
- Access session controller (email capture, access logging, signed link renewal)
- Admin console (document upload/delete, access log review)
- Magic-link admin sign-in
- Store adapters (Cosmos DB records, S3 objects, local files)

Usage:

    >>> from document_gate import AccessSessionController, GateConfig
    >>> from document_gate.backends import create_stores
    >>> from document_gate.local import FileGateTokenStore
    >>> from document_gate.network import IpifyAddressLookup
    >>> config = GateConfig.from_env()
    >>> records, objects = await create_stores(config)
    >>> async with AccessSessionController(
    ...     records, objects, FileGateTokenStore(), IpifyAddressLookup(), config
    ... ) as controller:
    ...     await controller.submit("visitor@example.com")
    ...     print(controller.current_link.url)
"""

from .access import (
    AccessDecision,
    AccessSessionController,
    AdminGuard,
    DisplayState,
    GateState,
    Notice,
    NoticeLevel,
    Permission,
)
from .admin import AdminConsole
from .config import GateConfig
from .exceptions import (
    AccessLogWriteError,
    AuthenticationError,
    AuthenticationRequiredError,
    DocumentGateError,
    DocumentLookupError,
    ExternalStoreError,
    PermissionDeniedError,
    SignedLinkError,
    StorageConnectionError,
    StorageIOError,
    ValidationError,
)
from .identity import AdminSession, MagicLinkProvider
from .protocol import (
    GATE_TOKEN_KEY,
    UNKNOWN_ADDRESS,
    AccessRecord,
    AddressLookup,
    DocumentRef,
    GateTokenStore,
    LocalGateToken,
    ObjectStore,
    RecordStore,
    SignedLink,
)

__all__ = [
    # Controller
    "AccessSessionController",
    "GateState",
    "DisplayState",
    "Notice",
    "NoticeLevel",
    # Admin
    "AdminConsole",
    "AdminGuard",
    "AccessDecision",
    "Permission",
    "AdminSession",
    "MagicLinkProvider",
    # Config
    "GateConfig",
    # Types
    "AccessRecord",
    "DocumentRef",
    "SignedLink",
    "LocalGateToken",
    "GATE_TOKEN_KEY",
    "UNKNOWN_ADDRESS",
    # Interfaces
    "RecordStore",
    "ObjectStore",
    "GateTokenStore",
    "AddressLookup",
    # Exceptions
    "DocumentGateError",
    "ExternalStoreError",
    "AccessLogWriteError",
    "DocumentLookupError",
    "SignedLinkError",
    "StorageIOError",
    "StorageConnectionError",
    "AuthenticationError",
    "AuthenticationRequiredError",
    "PermissionDeniedError",
    "ValidationError",
]

__version__ = "0.1.0"
