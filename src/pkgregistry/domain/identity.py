import re
from abc import ABC, abstractmethod
from typing import Optional, Tuple
from urllib.parse import urlsplit

from .errors import InvalidIdentity

# scope: alphanumerics and single hyphens, no leading or trailing hyphen
SCOPE_PATTERN = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9]|-(?=[A-Za-z0-9])){0,38}$")
NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,99}$")


class PackageIdentity:
    """
    canonical name of a package.

    identities compare case-insensitively but keep the spelling they were
    created with, since registries expect that spelling in request paths.
    """

    def __init__(self, description: str):
        if not description or not description.strip():
            raise InvalidIdentity(description)
        self.description = description.strip()

    @classmethod
    def plain(cls, value: str) -> "PackageIdentity":
        return cls(value)

    @property
    def scope_and_name(self) -> Optional[Tuple[str, str]]:
        """split into (scope, name) or return None for non-registry identities."""
        scope, sep, name = self.description.partition(".")
        if not sep:
            return None
        if not SCOPE_PATTERN.match(scope) or not NAME_PATTERN.match(name):
            return None
        return scope, name

    def require_scope_and_name(self) -> Tuple[str, str]:
        parts = self.scope_and_name
        if parts is None:
            raise InvalidIdentity(self.description)
        return parts

    @property
    def scope(self) -> Optional[str]:
        parts = self.scope_and_name
        return parts[0] if parts else None

    @property
    def name(self) -> Optional[str]:
        parts = self.scope_and_name
        return parts[1] if parts else None

    def __eq__(self, other):
        if not isinstance(other, PackageIdentity):
            return NotImplemented
        return self.description.lower() == other.description.lower()

    def __hash__(self):
        return hash(self.description.lower())

    def __str__(self):
        return self.description

    def __repr__(self):
        return f"PackageIdentity({self.description!r})"


class IdentityResolver(ABC):
    @abstractmethod
    def resolve_identifier(self, identifier: str) -> PackageIdentity:
        """turn a registry identifier ('scope.name') into an identity."""
        pass

    @abstractmethod
    def resolve_url(self, url: str) -> PackageIdentity:
        """derive the identity of a package from its source URL."""
        pass


class DefaultIdentityResolver(IdentityResolver):
    def resolve_identifier(self, identifier: str) -> PackageIdentity:
        identity = PackageIdentity(identifier)
        identity.require_scope_and_name()
        return identity

    def resolve_url(self, url: str) -> PackageIdentity:
        """
        normalize a source URL into a URL-derived identity.

        scheme, credentials, port, trailing slashes and a `.git` suffix are
        dropped and the result is lowercased, so
        `https://user@Example.com/mona/LinkedList.git` and
        `git@example.com:mona/linkedlist` resolve to the same identity.
        """
        value = url.strip()
        if not value:
            raise InvalidIdentity(url)

        # scp-style git urls: git@host:path
        scp_match = re.match(r"^[^/@]+@([^:/]+):(.+)$", value)
        if scp_match and "://" not in value:
            host, path = scp_match.groups()
        else:
            parts = urlsplit(value if "://" in value else f"//{value}")
            host = parts.hostname or ""
            path = parts.path

        path = path.rstrip("/")
        if path.endswith(".git"):
            path = path[: -len(".git")]
        normalized = f"{host}/{path.lstrip('/')}".strip("/").lower()
        if not normalized:
            raise InvalidIdentity(url)
        return PackageIdentity(normalized)
