import logging
import posixpath
from typing import Callable, List, Optional, Set

import httpx
from fsspec import AbstractFileSystem
from pydantic import BaseModel, ValidationError

from ..bundling.archiver import Archiver, ZipArchiver
from ..config import Registry, RegistryConfiguration
from ..domain.errors import (
    ArchiveWriteError,
    ChecksumMismatch,
    ChecksumUnavailable,
    InvalidIdentity,
    MalformedRegistryResponse,
    ManifestNotFound,
    ManifestParsingError,
    RegistryCommunicationError,
    RegistryError,
)
from ..domain.identity import DefaultIdentityResolver, IdentityResolver, PackageIdentity
from ..domain.models import (
    IdentifiersResponse,
    Manifest,
    Release,
    ReleaseMetadata,
    ReleasesResponse,
)
from ..manifest.loader import ManifestLoader
from ..net.breaker import CircuitOpenError
from ..net.http import HTTPClient
from ..utils.hash import ChecksumAlgorithm, SHA256
from .client import RegistryClient
from .negotiation import (
    DEFAULT_NAMESPACE,
    MediaType,
    accept_header,
    communication_error,
    decode_json,
    validate_response,
)

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "Package.swift"


class RegistryManager(RegistryClient):
    """
    talks to package registries on behalf of a dependency resolver.

    every coroutine either returns its result or raises exactly one
    RegistryError subclass. the manager keeps no per-call state, so calls for
    different packages can run concurrently on the same instance.
    """

    def __init__(
        self,
        configuration: RegistryConfiguration,
        identity_resolver: Optional[IdentityResolver] = None,
        archiver_provider: Optional[Callable[[], Archiver]] = None,
        http_client: Optional[HTTPClient] = None,
        api_namespace: str = DEFAULT_NAMESPACE,
    ):
        self.configuration = configuration
        self.identity_resolver = identity_resolver or DefaultIdentityResolver()
        self.archiver_provider = archiver_provider or ZipArchiver
        self.http_client = http_client or HTTPClient(configuration.http)
        self.api_namespace = api_namespace

    async def fetch_releases(self, identity: PackageIdentity) -> List[Release]:
        """every release the registry lists, withdrawn ones included."""
        registry, scope, name = self._locate(identity)
        url = f"{registry.url}/{scope}/{name}"
        response = await self._get(url, MediaType.JSON, f"fetch releases of {identity}")
        payload = self._parse(response, ReleasesResponse)
        return payload.to_releases()

    async def fetch_versions(self, identity: PackageIdentity) -> List[str]:
        versions = []
        for release in await self.fetch_releases(identity):
            if release.is_withdrawn:
                problem = release.problem
                logger.warning(
                    f"skipping {identity}@{release.version}: {problem.status} {problem.title} ({problem.detail})"
                )
                continue
            versions.append(release.version)
        return versions

    async def fetch_manifest(
        self,
        version: str,
        identity: PackageIdentity,
        manifest_loader: ManifestLoader,
        swift_version: Optional[str] = None,
    ) -> Manifest:
        registry, scope, name = self._locate(identity)
        url = f"{registry.url}/{scope}/{name}/{version}/{MANIFEST_FILENAME}"
        params = {"swift-version": swift_version} if swift_version else None

        response = await self._send(url, MediaType.SWIFT, params=params)
        if response.status_code == 404:
            raise ManifestNotFound(str(identity), version)
        self._check(response, MediaType.SWIFT, f"fetch manifest of {identity}@{version}")

        try:
            source = response.content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ManifestParsingError(f"manifest of {identity}@{version} is not valid UTF-8") from e

        origin = f"{identity}@{version}/{MANIFEST_FILENAME}"
        try:
            return manifest_loader.load(source, origin=origin)
        except RegistryError:
            raise
        except Exception as e:
            # manifests come from the registry; a loader crash is a parse failure
            raise ManifestParsingError(f"{origin}: {type(e).__name__}: {e}") from e

    async def fetch_release_metadata(self, version: str, identity: PackageIdentity) -> ReleaseMetadata:
        registry, scope, name = self._locate(identity)
        url = f"{registry.url}/{scope}/{name}/{version}"
        response = await self._get(url, MediaType.JSON, f"fetch metadata of {identity}@{version}")
        return self._parse(response, ReleaseMetadata)

    async def fetch_source_archive_checksum(self, version: str, identity: PackageIdentity) -> str:
        metadata = await self.fetch_release_metadata(version, identity)
        archives = metadata.source_archives()
        if len(archives) > 1:
            raise MalformedRegistryResponse(
                f"{identity}@{version} lists {len(archives)} source-archive resources"
            )
        if not archives or not archives[0].checksum:
            raise ChecksumUnavailable(str(identity), version)
        return archives[0].checksum

    async def resolve_expected_checksum(
        self, version: str, identity: PackageIdentity, provided: Optional[str]
    ) -> str:
        """a caller-supplied checksum wins; otherwise ask the registry for one."""
        if provided:
            return provided
        logger.debug(f"no checksum supplied for {identity}@{version}, fetching it from the registry")
        return await self.fetch_source_archive_checksum(version, identity)

    async def download_source_archive(
        self,
        version: str,
        identity: PackageIdentity,
        destination_fs: AbstractFileSystem,
        destination_path: str,
        expected_checksum: Optional[str] = None,
        checksum_algorithm: ChecksumAlgorithm = SHA256(),
    ) -> str:
        registry, scope, name = self._locate(identity)
        expected = await self.resolve_expected_checksum(version, identity, expected_checksum)

        url = f"{registry.url}/{scope}/{name}/{version}.zip"
        response = await self._get(url, MediaType.ZIP, f"download source archive of {identity}@{version}")
        body = response.content

        actual = checksum_algorithm.hash(body)
        if actual != expected.strip().lower():
            # nothing has been written yet; the bytes are dropped with the response
            raise ChecksumMismatch(expected, actual)
        self._check_advisory_digest(response, checksum_algorithm, actual)

        self._write(destination_fs, destination_path, body)
        logger.info(
            f"downloaded {identity}@{version} ({len(body)} bytes, {checksum_algorithm.name} {actual}) to {destination_path}"
        )
        return destination_path

    async def download_and_extract(
        self,
        version: str,
        identity: PackageIdentity,
        destination_fs: AbstractFileSystem,
        archive_path: str,
        extract_to: str,
        expected_checksum: Optional[str] = None,
        checksum_algorithm: ChecksumAlgorithm = SHA256(),
    ) -> List[str]:
        """verified download followed by extraction through the archiver."""
        await self.download_source_archive(
            version, identity, destination_fs, archive_path, expected_checksum, checksum_algorithm
        )
        return self.archiver_provider().extract(destination_fs, archive_path, extract_to)

    async def lookup_identities(self, source_url: str) -> Set[PackageIdentity]:
        # urls no identity can be derived from never reach the registry
        url_identity = self.identity_resolver.resolve_url(source_url)
        registry = self.configuration.registry_for(None)
        logger.debug(f"looking up registry identities for {url_identity} at {registry.url}")
        url = f"{registry.url}/identifiers"
        response = await self._get(
            url, MediaType.JSON, f"look up identities for {source_url}", params={"url": source_url}
        )
        payload = self._parse(response, IdentifiersResponse)

        identities = set()
        for identifier in payload.identifiers:
            try:
                identities.add(self.identity_resolver.resolve_identifier(identifier))
            except InvalidIdentity as e:
                raise MalformedRegistryResponse(f"invalid identifier '{identifier}' in lookup response") from e
        return identities

    def _locate(self, identity: PackageIdentity):
        scope, name = identity.require_scope_and_name()
        registry: Registry = self.configuration.registry_for(identity)
        return registry, scope, name

    async def _send(self, url: str, media_type: MediaType, params=None) -> httpx.Response:
        headers = {"Accept": accept_header(media_type, self.api_namespace)}
        try:
            return await self.http_client.get(url, headers=headers, params=params)
        except CircuitOpenError as e:
            raise RegistryCommunicationError(str(e), detail="circuit breaker open") from e
        except httpx.TransportError as e:
            raise RegistryCommunicationError(
                f"request to {url} failed: {e}", detail=type(e).__name__
            ) from e

    async def _get(self, url: str, media_type: MediaType, action: str, params=None) -> httpx.Response:
        response = await self._send(url, media_type, params=params)
        self._check(response, media_type, action)
        return response

    def _check(self, response: httpx.Response, media_type: MediaType, action: str):
        if response.status_code != 200:
            raise communication_error(response, action)
        validate_response(response, media_type)

    def _parse(self, response: httpx.Response, model: type) -> BaseModel:
        payload = decode_json(response)
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            raise MalformedRegistryResponse(
                f"{model.__name__} schema violation: {e.error_count()} error(s)", status=response.status_code
            ) from e

    def _check_advisory_digest(self, response: httpx.Response, algorithm: ChecksumAlgorithm, actual: str):
        digest = response.headers.get("Digest")
        if not digest:
            return
        for part in digest.split(","):
            label, _, value = part.strip().partition("=")
            if label.lower().replace("-", "") == algorithm.name.replace("-", "") and value.lower() != actual:
                logger.warning(f"Digest header {part.strip()} disagrees with the verified checksum {actual}")

    def _write(self, fs: AbstractFileSystem, path: str, data: bytes):
        try:
            parent = posixpath.dirname(path.rstrip("/"))
            if parent and parent != "/":
                fs.makedirs(parent, exist_ok=True)
            fs.pipe_file(path, data)
        except (OSError, ValueError) as e:
            raise ArchiveWriteError(path, str(e)) from e

    async def aclose(self):
        await self.http_client.aclose()
