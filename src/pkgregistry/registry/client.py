from abc import ABC, abstractmethod
from typing import List, Optional, Set

from fsspec import AbstractFileSystem

from ..domain.identity import PackageIdentity
from ..domain.models import Manifest
from ..manifest.loader import ManifestLoader
from ..utils.hash import ChecksumAlgorithm, SHA256


class RegistryClient(ABC):
    @abstractmethod
    async def fetch_versions(self, identity: PackageIdentity) -> List[str]:
        """Get available (non-withdrawn) versions for a package."""
        pass

    @abstractmethod
    async def fetch_manifest(
        self,
        version: str,
        identity: PackageIdentity,
        manifest_loader: ManifestLoader,
        swift_version: Optional[str] = None,
    ) -> Manifest:
        """Get the parsed manifest of a specific package version."""
        pass

    @abstractmethod
    async def fetch_source_archive_checksum(self, version: str, identity: PackageIdentity) -> str:
        """Get the registry-published checksum of a version's source archive."""
        pass

    @abstractmethod
    async def download_source_archive(
        self,
        version: str,
        identity: PackageIdentity,
        destination_fs: AbstractFileSystem,
        destination_path: str,
        expected_checksum: Optional[str] = None,
        checksum_algorithm: ChecksumAlgorithm = SHA256(),
    ) -> str:
        """Download and verify a source archive, writing it to destination_path."""
        pass

    @abstractmethod
    async def lookup_identities(self, source_url: str) -> Set[PackageIdentity]:
        """Get the registry identities published for a source URL."""
        pass
