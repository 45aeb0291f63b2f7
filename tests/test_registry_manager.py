"""test suite for RegistryManager."""
import pytest
import asyncio
import hashlib
import io
import json
import zipfile
from unittest.mock import AsyncMock, MagicMock
import sys
from pathlib import Path

import httpx
from fsspec import AbstractFileSystem
from fsspec.implementations.memory import MemoryFileSystem

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from pkgregistry.config import RegistryConfiguration
from pkgregistry.domain.errors import (
    ArchiveWriteError,
    ChecksumMismatch,
    ChecksumUnavailable,
    InvalidIdentity,
    MalformedRegistryResponse,
    ManifestNotFound,
    ManifestParsingError,
    NoRegistryConfigured,
    RegistryCommunicationError,
    UnexpectedContentType,
    UnsupportedContentVersion,
)
from pkgregistry.domain.identity import PackageIdentity
from pkgregistry.domain.models import Manifest, ProductType, LibraryType, TargetType
from pkgregistry.manifest.loader import DefaultManifestLoader, ManifestLoader
from pkgregistry.net.breaker import CircuitBreakerStrategy
from pkgregistry.net.http import HTTPClient, HTTPClientConfiguration
from pkgregistry.net.retry import RetryStrategy
from pkgregistry.registry.manager import RegistryManager
from pkgregistry.utils.hash import SHA256

REGISTRY_URL = "https://packages.example.com"
IDENTITY = PackageIdentity.plain("mona.LinkedList")
VERSION = "1.1.1"

RELEASES = {
    "releases": {
        "1.1.1": {"url": "https://packages.example.com/mona/LinkedList/1.1.1"},
        "1.1.0": {
            "url": "https://packages.example.com/mona/LinkedList/1.1.0",
            "problem": {
                "status": 410,
                "title": "Gone",
                "detail": "this release was removed from the registry",
            },
        },
        "1.0.0": {"url": "https://packages.example.com/mona/LinkedList/1.0.0"},
    }
}

MANIFEST = """// swift-tools-version:5.0
import PackageDescription

let package = Package(
    name: "LinkedList",
    products: [
        .library(name: "LinkedList", targets: ["LinkedList"])
    ],
    targets: [
        .target(name: "LinkedList"),
        .testTarget(name: "LinkedListTests", dependencies: ["LinkedList"]),
    ],
    swiftLanguageVersions: [.v4, .v5]
)
"""

PUBLISHED_CHECKSUM = "a2ac54cf25fbc1ad0028f03f0aa4b96833b83bb05a14e510892bb27dea4dc812"


def make_zip(files=None) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, content in (files or {}).items():
            zf.writestr(name, content)
    return buffer.getvalue()


EMPTY_ZIP = make_zip()
EMPTY_ZIP_CHECKSUM = hashlib.sha256(EMPTY_ZIP).hexdigest()


def json_response(payload, status=200, **headers):
    return httpx.Response(status, json=payload, headers={"Content-Version": "1", **headers})


def metadata_payload(resources):
    return {
        "id": "mona.LinkedList",
        "version": VERSION,
        "resources": resources,
        "metadata": {"description": "One thing links to another."},
    }


def zip_response(body=EMPTY_ZIP):
    return httpx.Response(
        200,
        content=body,
        headers={
            "Content-Type": "application/zip",
            "Content-Version": "1",
            "Content-Disposition": 'attachment; filename="LinkedList-1.1.1.zip"',
        },
    )


class FakeRegistry:
    """routes requests by url and records every request seen."""

    def __init__(self, routes=None):
        self.routes = routes or {}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        assert request.method == "GET"
        route = self.routes.get(str(request.url))
        if route is None:
            return httpx.Response(404, json={"detail": "not found"}, headers={"Content-Type": "application/problem+json"})
        if isinstance(route, Exception):
            raise route
        return route

    def urls(self):
        return [str(r.url) for r in self.requests]


def make_manager(fake: FakeRegistry, configuration: RegistryConfiguration = None) -> RegistryManager:
    if configuration is None:
        configuration = RegistryConfiguration()
        configuration.set_registry(REGISTRY_URL)
    http_client = HTTPClient(
        HTTPClientConfiguration(retry=RetryStrategy.none(), circuit_breaker=CircuitBreakerStrategy.none()),
        transport=httpx.MockTransport(fake),
    )
    return RegistryManager(configuration, http_client=http_client)


def run(manager: RegistryManager, operation):
    async def runner():
        try:
            return await operation
        finally:
            await manager.aclose()

    return asyncio.run(runner())


@pytest.fixture
def memory_fs():
    """an isolated in-memory destination file system."""
    fs = MemoryFileSystem()
    fs.store.clear()
    fs.pseudo_dirs.clear()
    fs.pseudo_dirs.append("")
    yield fs
    fs.store.clear()


class TestFetchVersions:
    @pytest.fixture
    def fake(self):
        return FakeRegistry({f"{REGISTRY_URL}/mona/LinkedList": json_response(RELEASES)})

    def test_withdrawn_releases_are_excluded(self, fake):
        manager = make_manager(fake)
        versions = run(manager, manager.fetch_versions(IDENTITY))
        assert versions == ["1.1.1", "1.0.0"]

    def test_sends_json_accept_header(self, fake):
        manager = make_manager(fake)
        run(manager, manager.fetch_versions(IDENTITY))
        assert len(fake.requests) == 1
        assert fake.requests[0].headers["Accept"] == "application/vnd.swift.registry.v1+json"

    def test_fetch_releases_keeps_withdrawn_for_diagnostics(self, fake):
        manager = make_manager(fake)
        releases = run(manager, manager.fetch_releases(IDENTITY))
        assert [r.version for r in releases] == ["1.1.1", "1.1.0", "1.0.0"]
        withdrawn = releases[1]
        assert withdrawn.is_withdrawn
        assert withdrawn.problem.status == 410
        assert withdrawn.problem.title == "Gone"
        assert not releases[0].is_withdrawn

    def test_registry_order_is_preserved(self):
        payload = {"releases": {"0.9.0": {}, "2.0.0": {}, "1.0.0": {}}}
        fake = FakeRegistry({f"{REGISTRY_URL}/mona/LinkedList": json_response(payload)})
        manager = make_manager(fake)
        assert run(manager, manager.fetch_versions(IDENTITY)) == ["0.9.0", "2.0.0", "1.0.0"]

    def test_non_200_is_communication_error(self):
        fake = FakeRegistry({
            f"{REGISTRY_URL}/mona/LinkedList": httpx.Response(
                500, json={"detail": "database unavailable"}, headers={"Content-Type": "application/problem+json"}
            )
        })
        manager = make_manager(fake)
        with pytest.raises(RegistryCommunicationError) as exc_info:
            run(manager, manager.fetch_versions(IDENTITY))
        assert exc_info.value.status == 500
        assert exc_info.value.detail == "database unavailable"

    def test_malformed_json(self):
        fake = FakeRegistry({
            f"{REGISTRY_URL}/mona/LinkedList": httpx.Response(
                200, content=b"{not json", headers={"Content-Type": "application/json"}
            )
        })
        manager = make_manager(fake)
        with pytest.raises(MalformedRegistryResponse) as exc_info:
            run(manager, manager.fetch_versions(IDENTITY))
        # malformed bodies are still communication errors
        assert isinstance(exc_info.value, RegistryCommunicationError)

    def test_schema_violation(self):
        fake = FakeRegistry({f"{REGISTRY_URL}/mona/LinkedList": json_response({"versions": []})})
        manager = make_manager(fake)
        with pytest.raises(MalformedRegistryResponse):
            run(manager, manager.fetch_versions(IDENTITY))

    def test_unexpected_content_type(self):
        fake = FakeRegistry({
            f"{REGISTRY_URL}/mona/LinkedList": httpx.Response(
                200, content=json.dumps(RELEASES).encode(), headers={"Content-Type": "text/html"}
            )
        })
        manager = make_manager(fake)
        with pytest.raises(UnexpectedContentType) as exc_info:
            run(manager, manager.fetch_versions(IDENTITY))
        assert exc_info.value.actual == "text/html"

    def test_content_type_parameters_are_ignored(self):
        fake = FakeRegistry({
            f"{REGISTRY_URL}/mona/LinkedList": httpx.Response(
                200, content=json.dumps(RELEASES).encode(),
                headers={"Content-Type": "application/json; charset=utf-8"},
            )
        })
        manager = make_manager(fake)
        assert run(manager, manager.fetch_versions(IDENTITY)) == ["1.1.1", "1.0.0"]

    def test_unknown_content_version(self):
        fake = FakeRegistry({
            f"{REGISTRY_URL}/mona/LinkedList": json_response(RELEASES, **{"Content-Version": "2"})
        })
        manager = make_manager(fake)
        with pytest.raises(UnsupportedContentVersion):
            run(manager, manager.fetch_versions(IDENTITY))

    def test_invalid_identity_sends_nothing(self, fake):
        manager = make_manager(fake)
        with pytest.raises(InvalidIdentity):
            run(manager, manager.fetch_versions(PackageIdentity("example.com/mona/linkedlist")))
        assert fake.requests == []

    def test_no_registry_configured(self, fake):
        manager = make_manager(fake, RegistryConfiguration())
        with pytest.raises(NoRegistryConfigured):
            run(manager, manager.fetch_versions(IDENTITY))
        assert fake.requests == []

    def test_scope_registry_wins_over_default(self):
        configuration = RegistryConfiguration()
        configuration.set_registry(REGISTRY_URL)
        configuration.set_registry("https://mona.example.com", scope="mona")
        fake = FakeRegistry({"https://mona.example.com/mona/LinkedList": json_response(RELEASES)})
        manager = make_manager(fake, configuration)
        assert run(manager, manager.fetch_versions(IDENTITY)) == ["1.1.1", "1.0.0"]
        assert fake.urls() == ["https://mona.example.com/mona/LinkedList"]

    def test_transport_failure(self):
        url = f"{REGISTRY_URL}/mona/LinkedList"
        fake = FakeRegistry({url: httpx.ConnectError("connection refused")})
        manager = make_manager(fake)
        with pytest.raises(RegistryCommunicationError) as exc_info:
            run(manager, manager.fetch_versions(IDENTITY))
        assert exc_info.value.status is None
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    def test_concurrent_calls_are_independent(self):
        other = PackageIdentity("mona.Queue")
        fake = FakeRegistry({
            f"{REGISTRY_URL}/mona/LinkedList": json_response(RELEASES),
            f"{REGISTRY_URL}/mona/Queue": json_response({"releases": {"3.0.0": {}}}),
        })
        manager = make_manager(fake)

        async def both():
            return await asyncio.gather(manager.fetch_versions(IDENTITY), manager.fetch_versions(other))

        linked_list, queue = run(manager, both())
        assert linked_list == ["1.1.1", "1.0.0"]
        assert queue == ["3.0.0"]


class TestFetchManifest:
    MANIFEST_URL = f"{REGISTRY_URL}/mona/LinkedList/{VERSION}/Package.swift"

    @staticmethod
    def manifest_response(source=MANIFEST, content_type="text/x-swift"):
        return httpx.Response(
            200, content=source.encode(), headers={"Content-Type": content_type, "Content-Version": "1"}
        )

    def test_manifest_fidelity(self):
        fake = FakeRegistry({self.MANIFEST_URL: self.manifest_response()})
        manager = make_manager(fake)
        manifest = run(manager, manager.fetch_manifest(VERSION, IDENTITY, DefaultManifestLoader()))

        assert fake.requests[0].headers["Accept"] == "application/vnd.swift.registry.v1+swift"
        assert manifest.name == "LinkedList"

        assert len(manifest.products) == 1
        assert manifest.products[0].name == "LinkedList"
        assert manifest.products[0].type == ProductType.LIBRARY
        assert manifest.products[0].library_type == LibraryType.AUTOMATIC

        assert len(manifest.targets) == 2
        assert manifest.targets[0].name == "LinkedList"
        assert manifest.targets[0].type == TargetType.REGULAR
        assert manifest.targets[-1].name == "LinkedListTests"
        assert manifest.targets[-1].type == TargetType.TEST

        assert manifest.swift_language_versions == ["4", "5"]

    def test_swift_version_query_parameter(self):
        fake = FakeRegistry({f"{self.MANIFEST_URL}?swift-version=5.0": self.manifest_response()})
        manager = make_manager(fake)
        manifest = run(manager, manager.fetch_manifest(VERSION, IDENTITY, DefaultManifestLoader(), swift_version="5.0"))
        assert manifest.name == "LinkedList"
        assert fake.requests[0].url.params["swift-version"] == "5.0"

    def test_raw_source_is_handed_to_loader(self):
        fake = FakeRegistry({self.MANIFEST_URL: self.manifest_response()})
        manager = make_manager(fake)
        loader = MagicMock(spec=ManifestLoader)
        loader.load.return_value = Manifest(name="LinkedList", tools_version="5.0")

        result = run(manager, manager.fetch_manifest(VERSION, IDENTITY, loader))

        assert result.name == "LinkedList"
        source = loader.load.call_args.args[0]
        assert source == MANIFEST

    def test_not_found(self):
        manager = make_manager(FakeRegistry())
        with pytest.raises(ManifestNotFound):
            run(manager, manager.fetch_manifest(VERSION, IDENTITY, DefaultManifestLoader()))

    def test_server_error_is_communication_error(self):
        fake = FakeRegistry({self.MANIFEST_URL: httpx.Response(502, text="bad gateway")})
        manager = make_manager(fake)
        with pytest.raises(RegistryCommunicationError) as exc_info:
            run(manager, manager.fetch_manifest(VERSION, IDENTITY, DefaultManifestLoader()))
        assert exc_info.value.status == 502

    def test_loader_rejection_is_parsing_error(self):
        broken = MANIFEST.replace("// swift-tools-version:5.0", "// swift-tools-version:3.1")
        fake = FakeRegistry({self.MANIFEST_URL: self.manifest_response(broken)})
        manager = make_manager(fake)
        with pytest.raises(ManifestParsingError):
            run(manager, manager.fetch_manifest(VERSION, IDENTITY, DefaultManifestLoader()))
        # deterministic failures are not retried
        assert len(fake.requests) == 1

    def test_loader_value_error_is_wrapped(self):
        fake = FakeRegistry({self.MANIFEST_URL: self.manifest_response()})
        manager = make_manager(fake)
        loader = MagicMock(spec=ManifestLoader)
        loader.load.side_effect = ValueError("unexpected token")
        with pytest.raises(ManifestParsingError, match="unexpected token"):
            run(manager, manager.fetch_manifest(VERSION, IDENTITY, loader))

    def test_any_loader_crash_is_parsing_error(self):
        fake = FakeRegistry({self.MANIFEST_URL: self.manifest_response()})
        manager = make_manager(fake)
        loader = MagicMock(spec=ManifestLoader)
        loader.load.side_effect = RuntimeError("loader blew up")
        with pytest.raises(ManifestParsingError, match="loader blew up") as exc_info:
            run(manager, manager.fetch_manifest(VERSION, IDENTITY, loader))
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_pathologically_nested_manifest(self):
        nested = "[" * 5000 + "]" * 5000
        source = f'// swift-tools-version:5.0\nlet package = Package(name: "X", products: {nested})\n'
        fake = FakeRegistry({self.MANIFEST_URL: self.manifest_response(source)})
        manager = make_manager(fake)
        with pytest.raises(ManifestParsingError):
            run(manager, manager.fetch_manifest(VERSION, IDENTITY, DefaultManifestLoader()))

    def test_json_content_type_is_rejected(self):
        fake = FakeRegistry({self.MANIFEST_URL: self.manifest_response(content_type="application/json")})
        manager = make_manager(fake)
        with pytest.raises(UnexpectedContentType):
            run(manager, manager.fetch_manifest(VERSION, IDENTITY, DefaultManifestLoader()))


class TestFetchSourceArchiveChecksum:
    METADATA_URL = f"{REGISTRY_URL}/mona/LinkedList/{VERSION}"

    def test_checksum_is_returned_unmodified(self):
        payload = metadata_payload([
            {"name": "source-archive", "type": "application/zip", "checksum": PUBLISHED_CHECKSUM}
        ])
        fake = FakeRegistry({self.METADATA_URL: json_response(payload)})
        manager = make_manager(fake)
        checksum = run(manager, manager.fetch_source_archive_checksum(VERSION, IDENTITY))
        assert checksum == PUBLISHED_CHECKSUM
        assert fake.requests[0].headers["Accept"] == "application/vnd.swift.registry.v1+json"

    def test_release_metadata(self):
        payload = metadata_payload([
            {"name": "source-archive", "type": "application/zip", "checksum": PUBLISHED_CHECKSUM}
        ])
        fake = FakeRegistry({self.METADATA_URL: json_response(payload)})
        manager = make_manager(fake)
        metadata = run(manager, manager.fetch_release_metadata(VERSION, IDENTITY))
        assert metadata.id == "mona.LinkedList"
        assert metadata.metadata["description"] == "One thing links to another."

    def test_missing_source_archive(self):
        payload = metadata_payload([{"name": "signature", "type": "application/octet-stream", "checksum": "00"}])
        fake = FakeRegistry({self.METADATA_URL: json_response(payload)})
        manager = make_manager(fake)
        with pytest.raises(ChecksumUnavailable):
            run(manager, manager.fetch_source_archive_checksum(VERSION, IDENTITY))

    def test_source_archive_without_checksum(self):
        payload = metadata_payload([{"name": "source-archive", "type": "application/zip"}])
        fake = FakeRegistry({self.METADATA_URL: json_response(payload)})
        manager = make_manager(fake)
        with pytest.raises(ChecksumUnavailable):
            run(manager, manager.fetch_source_archive_checksum(VERSION, IDENTITY))

    def test_multiple_source_archives(self):
        payload = metadata_payload([
            {"name": "source-archive", "type": "application/zip", "checksum": PUBLISHED_CHECKSUM},
            {"name": "source-archive", "type": "application/zip", "checksum": "ff" * 32},
        ])
        fake = FakeRegistry({self.METADATA_URL: json_response(payload)})
        manager = make_manager(fake)
        with pytest.raises(MalformedRegistryResponse):
            run(manager, manager.fetch_source_archive_checksum(VERSION, IDENTITY))


class TestDownloadSourceArchive:
    DOWNLOAD_URL = f"{REGISTRY_URL}/mona/LinkedList/{VERSION}.zip"
    METADATA_URL = f"{REGISTRY_URL}/mona/LinkedList/{VERSION}"
    PATH = "/LinkedList-1.1.1"

    def metadata_route(self, checksum=EMPTY_ZIP_CHECKSUM):
        resources = [{"name": "source-archive", "type": "application/zip", "checksum": checksum}]
        return json_response(metadata_payload(resources))

    def test_with_expected_checksum(self, memory_fs):
        fake = FakeRegistry({self.DOWNLOAD_URL: zip_response()})
        manager = make_manager(fake)

        result = run(manager, manager.download_source_archive(
            VERSION, IDENTITY, memory_fs, self.PATH,
            expected_checksum=EMPTY_ZIP_CHECKSUM, checksum_algorithm=SHA256(),
        ))

        assert result == self.PATH
        assert memory_fs.cat_file(self.PATH) == EMPTY_ZIP
        assert fake.urls() == [self.DOWNLOAD_URL]
        assert fake.requests[0].headers["Accept"] == "application/vnd.swift.registry.v1+zip"

    def test_without_expected_checksum_fetches_metadata_first(self, memory_fs):
        fake = FakeRegistry({self.DOWNLOAD_URL: zip_response(), self.METADATA_URL: self.metadata_route()})
        manager = make_manager(fake)

        run(manager, manager.download_source_archive(VERSION, IDENTITY, memory_fs, self.PATH))

        assert fake.urls() == [self.METADATA_URL, self.DOWNLOAD_URL]
        assert fake.requests[0].headers["Accept"] == "application/vnd.swift.registry.v1+json"
        assert memory_fs.cat_file(self.PATH) == EMPTY_ZIP

    def test_checksum_mismatch_writes_nothing(self, memory_fs):
        fake = FakeRegistry({self.DOWNLOAD_URL: zip_response(b"tampered bytes")})
        manager = make_manager(fake)

        with pytest.raises(ChecksumMismatch) as exc_info:
            run(manager, manager.download_source_archive(
                VERSION, IDENTITY, memory_fs, self.PATH, expected_checksum=EMPTY_ZIP_CHECKSUM,
            ))

        assert exc_info.value.expected == EMPTY_ZIP_CHECKSUM
        assert exc_info.value.actual == hashlib.sha256(b"tampered bytes").hexdigest()
        assert not memory_fs.exists(self.PATH)

    def test_mismatch_against_registry_checksum(self, memory_fs):
        fake = FakeRegistry({
            self.DOWNLOAD_URL: zip_response(),
            self.METADATA_URL: self.metadata_route(PUBLISHED_CHECKSUM),
        })
        manager = make_manager(fake)
        with pytest.raises(ChecksumMismatch):
            run(manager, manager.download_source_archive(VERSION, IDENTITY, memory_fs, self.PATH))
        assert not memory_fs.exists(self.PATH)

    def test_mismatch_leaves_existing_file_untouched(self, memory_fs):
        memory_fs.pipe_file(self.PATH, b"previous contents")
        fake = FakeRegistry({self.DOWNLOAD_URL: zip_response(b"tampered bytes")})
        manager = make_manager(fake)
        with pytest.raises(ChecksumMismatch):
            run(manager, manager.download_source_archive(
                VERSION, IDENTITY, memory_fs, self.PATH, expected_checksum=EMPTY_ZIP_CHECKSUM,
            ))
        assert memory_fs.cat_file(self.PATH) == b"previous contents"

    def test_expected_checksum_case_is_ignored(self, memory_fs):
        fake = FakeRegistry({self.DOWNLOAD_URL: zip_response()})
        manager = make_manager(fake)
        run(manager, manager.download_source_archive(
            VERSION, IDENTITY, memory_fs, self.PATH, expected_checksum=EMPTY_ZIP_CHECKSUM.upper(),
        ))
        assert memory_fs.cat_file(self.PATH) == EMPTY_ZIP

    def test_no_checksum_source_means_no_download(self, memory_fs):
        payload = metadata_payload([])
        fake = FakeRegistry({self.DOWNLOAD_URL: zip_response(), self.METADATA_URL: json_response(payload)})
        manager = make_manager(fake)
        with pytest.raises(ChecksumUnavailable):
            run(manager, manager.download_source_archive(VERSION, IDENTITY, memory_fs, self.PATH))
        assert fake.urls() == [self.METADATA_URL]
        assert not memory_fs.exists(self.PATH)

    def test_download_failure(self, memory_fs):
        manager = make_manager(FakeRegistry())
        with pytest.raises(RegistryCommunicationError) as exc_info:
            run(manager, manager.download_source_archive(
                VERSION, IDENTITY, memory_fs, self.PATH, expected_checksum=EMPTY_ZIP_CHECKSUM,
            ))
        assert exc_info.value.status == 404
        assert not memory_fs.exists(self.PATH)

    def test_write_failure(self):
        fake = FakeRegistry({self.DOWNLOAD_URL: zip_response()})
        manager = make_manager(fake)
        fs = MagicMock(spec=AbstractFileSystem)
        fs.pipe_file.side_effect = OSError("disk full")

        with pytest.raises(ArchiveWriteError) as exc_info:
            run(manager, manager.download_source_archive(
                VERSION, IDENTITY, fs, self.PATH, expected_checksum=EMPTY_ZIP_CHECKSUM,
            ))
        assert exc_info.value.path == self.PATH
        assert "disk full" in str(exc_info.value)

    def test_nested_destination(self, memory_fs):
        fake = FakeRegistry({self.DOWNLOAD_URL: zip_response()})
        manager = make_manager(fake)
        path = "/cache/mona/LinkedList-1.1.1.zip"
        run(manager, manager.download_source_archive(
            VERSION, IDENTITY, memory_fs, path, expected_checksum=EMPTY_ZIP_CHECKSUM,
        ))
        assert memory_fs.cat_file(path) == EMPTY_ZIP

    def test_download_and_extract(self, memory_fs):
        archive = make_zip({
            "LinkedList-1.1.1/Package.swift": MANIFEST,
            "LinkedList-1.1.1/Sources/LinkedList/LinkedList.swift": "public struct LinkedList {}",
        })
        fake = FakeRegistry({self.DOWNLOAD_URL: zip_response(archive)})
        manager = make_manager(fake)

        written = run(manager, manager.download_and_extract(
            VERSION, IDENTITY, memory_fs, "/downloads/LinkedList.zip", "/checkouts",
            expected_checksum=hashlib.sha256(archive).hexdigest(),
        ))

        assert sorted(written) == [
            "/checkouts/LinkedList-1.1.1/Package.swift",
            "/checkouts/LinkedList-1.1.1/Sources/LinkedList/LinkedList.swift",
        ]
        assert memory_fs.cat_file("/checkouts/LinkedList-1.1.1/Package.swift") == MANIFEST.encode()


class TestResolveExpectedChecksum:
    @pytest.fixture
    def manager(self):
        manager = make_manager(FakeRegistry())
        manager.fetch_source_archive_checksum = AsyncMock(return_value=PUBLISHED_CHECKSUM)
        return manager

    def test_provided_checksum_skips_fetch(self, manager):
        result = run(manager, manager.resolve_expected_checksum(VERSION, IDENTITY, "abc123"))
        assert result == "abc123"
        manager.fetch_source_archive_checksum.assert_not_called()

    def test_absent_checksum_fetches_exactly_once(self, manager):
        result = run(manager, manager.resolve_expected_checksum(VERSION, IDENTITY, None))
        assert result == PUBLISHED_CHECKSUM
        manager.fetch_source_archive_checksum.assert_awaited_once_with(VERSION, IDENTITY)


class TestLookupIdentities:
    SOURCE_URL = "https://example.com/mona/LinkedList"

    def handler_for(self, payload):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/identifiers"
            assert request.url.params["url"] == self.SOURCE_URL
            assert request.headers["Accept"] == "application/vnd.swift.registry.v1+json"
            return json_response(payload)
        return handler

    def make(self, handler):
        configuration = RegistryConfiguration()
        configuration.set_registry(REGISTRY_URL)
        http_client = HTTPClient(
            HTTPClientConfiguration(retry=RetryStrategy.none(), circuit_breaker=CircuitBreakerStrategy.none()),
            transport=httpx.MockTransport(handler),
        )
        return RegistryManager(configuration, http_client=http_client)

    def test_single_identifier(self):
        manager = self.make(self.handler_for({"identifiers": ["mona.LinkedList"]}))
        identities = run(manager, manager.lookup_identities(self.SOURCE_URL))
        assert identities == {PackageIdentity.plain("mona.LinkedList")}

    def test_unregistered_url_is_empty(self):
        manager = self.make(self.handler_for({"identifiers": []}))
        assert run(manager, manager.lookup_identities(self.SOURCE_URL)) == set()

    def test_identities_compare_case_insensitively(self):
        manager = self.make(self.handler_for({"identifiers": ["mona.LinkedList", "Mona.linkedlist"]}))
        identities = run(manager, manager.lookup_identities(self.SOURCE_URL))
        assert len(identities) == 1

    def test_invalid_identifier(self):
        manager = self.make(self.handler_for({"identifiers": ["not-an-identifier"]}))
        with pytest.raises(MalformedRegistryResponse):
            run(manager, manager.lookup_identities(self.SOURCE_URL))

    def test_missing_endpoint(self):
        manager = make_manager(FakeRegistry())
        with pytest.raises(RegistryCommunicationError) as exc_info:
            run(manager, manager.lookup_identities(self.SOURCE_URL))
        assert exc_info.value.status == 404

    def test_requires_default_registry(self):
        configuration = RegistryConfiguration()
        configuration.set_registry("https://mona.example.com", scope="mona")
        manager = make_manager(FakeRegistry(), configuration)
        with pytest.raises(NoRegistryConfigured):
            run(manager, manager.lookup_identities(self.SOURCE_URL))

    @pytest.mark.parametrize("source_url", ["", "   ", "https://"])
    def test_unusable_url_sends_nothing(self, source_url):
        fake = FakeRegistry()
        manager = make_manager(fake)
        with pytest.raises(InvalidIdentity):
            run(manager, manager.lookup_identities(source_url))
        assert fake.requests == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
