"""client for package registries: versions, manifests and verified source archives."""
from .config import Registry, RegistryConfiguration, SecurityPolicy
from .domain.errors import (
    RegistryError,
    InvalidIdentity,
    RegistryConfigurationError,
    NoRegistryConfigured,
    InsecureRegistry,
    RegistryCommunicationError,
    MalformedRegistryResponse,
    UnexpectedContentType,
    UnsupportedContentVersion,
    ManifestNotFound,
    ManifestParsingError,
    ChecksumUnavailable,
    ChecksumMismatch,
    ArchiveWriteError,
    ArchiveExtractionError,
)
from .domain.identity import PackageIdentity, IdentityResolver, DefaultIdentityResolver
from .manifest.loader import ManifestLoader, DefaultManifestLoader
from .net.http import HTTPClient, HTTPClientConfiguration
from .net.retry import RetryStrategy
from .net.breaker import CircuitBreakerStrategy
from .registry.manager import RegistryManager
from .utils.hash import ChecksumAlgorithm, SHA256

__all__ = [
    "Registry",
    "RegistryConfiguration",
    "SecurityPolicy",
    "RegistryError",
    "InvalidIdentity",
    "RegistryConfigurationError",
    "NoRegistryConfigured",
    "InsecureRegistry",
    "RegistryCommunicationError",
    "MalformedRegistryResponse",
    "UnexpectedContentType",
    "UnsupportedContentVersion",
    "ManifestNotFound",
    "ManifestParsingError",
    "ChecksumUnavailable",
    "ChecksumMismatch",
    "ArchiveWriteError",
    "ArchiveExtractionError",
    "PackageIdentity",
    "IdentityResolver",
    "DefaultIdentityResolver",
    "ManifestLoader",
    "DefaultManifestLoader",
    "HTTPClient",
    "HTTPClientConfiguration",
    "RetryStrategy",
    "CircuitBreakerStrategy",
    "RegistryManager",
    "ChecksumAlgorithm",
    "SHA256",
]
