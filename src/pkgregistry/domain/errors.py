from typing import Optional


class RegistryError(Exception):
    """base class for exceptions in pkgregistry."""
    pass


class InvalidIdentity(RegistryError):
    """raised when an identity cannot be split into scope and name."""
    def __init__(self, identity: str):
        self.identity = identity
        super().__init__(f"'{identity}' is not a valid registry identity (expected 'scope.name')")


class RegistryConfigurationError(RegistryError):
    """raised when the registry configuration cannot serve a request."""
    pass


class NoRegistryConfigured(RegistryConfigurationError):
    def __init__(self, identity: Optional[str] = None):
        self.identity = identity
        if identity:
            message = f"no registry configured for '{identity}'"
        else:
            message = "no default registry configured"
        super().__init__(message)


class InsecureRegistry(RegistryConfigurationError):
    def __init__(self, url: str):
        self.url = url
        super().__init__(f"registry '{url}' does not use https and insecure registries are not allowed")


class RegistryCommunicationError(RegistryError):
    """raised for non-success responses and transport failures that survived retries."""
    def __init__(self, message: str, status: Optional[int] = None, detail: Optional[str] = None):
        self.status = status
        self.detail = detail
        super().__init__(message)


class MalformedRegistryResponse(RegistryCommunicationError):
    """the registry answered, but not in the shape the protocol requires."""
    def __init__(self, detail: str, status: Optional[int] = None):
        super().__init__(f"malformed registry response: {detail}", status=status, detail=detail)


class UnexpectedContentType(MalformedRegistryResponse):
    def __init__(self, expected: str, actual: Optional[str], status: Optional[int] = None):
        self.expected = expected
        self.actual = actual
        super().__init__(f"expected content type '{expected}', got '{actual or 'none'}'", status=status)


class UnsupportedContentVersion(MalformedRegistryResponse):
    def __init__(self, version: str, status: Optional[int] = None):
        self.version = version
        super().__init__(f"unsupported Content-Version '{version}'", status=status)


class ManifestNotFound(RegistryError):
    def __init__(self, identity: str, version: str):
        self.identity = identity
        self.version = version
        super().__init__(f"manifest for {identity}@{version} not found")


class ManifestParsingError(RegistryError):
    """raised when manifest source cannot be turned into a Manifest."""
    pass


class ChecksumUnavailable(RegistryError):
    def __init__(self, identity: str, version: str):
        self.identity = identity
        self.version = version
        super().__init__(f"registry does not publish a source archive checksum for {identity}@{version}")


class ChecksumMismatch(RegistryError):
    """the downloaded archive does not hash to the expected checksum."""
    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(f"checksum mismatch: expected {expected}, got {actual}")


class ArchiveWriteError(RegistryError):
    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"failed to write archive to '{path}': {reason}")


class ArchiveExtractionError(RegistryError):
    pass
