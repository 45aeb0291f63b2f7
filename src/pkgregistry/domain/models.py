from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

SOURCE_ARCHIVE_RESOURCE = "source-archive"


class Problem(BaseModel):
    """RFC 7807 style problem details attached to a withdrawn release."""
    status: Optional[int] = None
    title: Optional[str] = None
    detail: Optional[str] = None


class AvailableRelease(BaseModel):
    version: str
    url: Optional[str] = None

    @property
    def is_withdrawn(self) -> bool:
        return False


class WithdrawnRelease(BaseModel):
    version: str
    url: Optional[str] = None
    problem: Problem

    @property
    def is_withdrawn(self) -> bool:
        return True


Release = Union[AvailableRelease, WithdrawnRelease]


class ReleaseEntry(BaseModel):
    """one value of the `releases` mapping as it appears on the wire."""
    url: Optional[str] = None
    problem: Optional[Problem] = None

    def to_release(self, version: str) -> Release:
        if self.problem is not None:
            return WithdrawnRelease(version=version, url=self.url, problem=self.problem)
        return AvailableRelease(version=version, url=self.url)


class ReleasesResponse(BaseModel):
    releases: Dict[str, ReleaseEntry]

    def to_releases(self) -> List[Release]:
        # dicts keep insertion order, which is the order the registry sent
        return [entry.to_release(version) for version, entry in self.releases.items()]


class ReleaseResource(BaseModel):
    name: str
    type: Optional[str] = None
    checksum: Optional[str] = None


class ReleaseMetadata(BaseModel):
    id: str
    version: str
    resources: List[ReleaseResource] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def source_archives(self) -> List[ReleaseResource]:
        return [r for r in self.resources if r.name == SOURCE_ARCHIVE_RESOURCE]


class IdentifiersResponse(BaseModel):
    identifiers: List[str] = Field(default_factory=list)


class ProductType(str, Enum):
    LIBRARY = "library"
    EXECUTABLE = "executable"
    PLUGIN = "plugin"


class LibraryType(str, Enum):
    AUTOMATIC = "automatic"
    STATIC = "static"
    DYNAMIC = "dynamic"


class Product(BaseModel):
    name: str
    type: ProductType
    library_type: Optional[LibraryType] = None
    targets: List[str] = Field(default_factory=list)


class TargetType(str, Enum):
    REGULAR = "regular"
    TEST = "test"
    EXECUTABLE = "executable"
    PLUGIN = "plugin"
    SYSTEM = "system"
    BINARY = "binary"


class Target(BaseModel):
    name: str
    type: TargetType
    dependencies: List[str] = Field(default_factory=list)


class Manifest(BaseModel):
    """represents a parsed package manifest (Package.swift)."""
    name: str
    tools_version: str
    products: List[Product] = Field(default_factory=list)
    targets: List[Target] = Field(default_factory=list)
    swift_language_versions: Optional[List[str]] = None
