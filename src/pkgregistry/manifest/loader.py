import logging
import re
from abc import ABC, abstractmethod
from typing import List, Optional

from packaging.version import InvalidVersion, Version

from ..domain.errors import ManifestParsingError
from ..domain.models import LibraryType, Manifest, Product, ProductType, Target, TargetType
from .parser import ArrayNode, CallNode, ManifestParser, MemberNode, Node, ParseError, StringNode
from .tokenizer import ManifestTokenizer

logger = logging.getLogger(__name__)

TOOLS_VERSION_PATTERN = re.compile(r"^//\s*swift-tools-version\s*:\s*(\d+(?:\.\d+){0,2})", re.IGNORECASE)
MINIMUM_TOOLS_VERSION = Version("4.0")
CURRENT_TOOLS_VERSION = Version("5.9")

PRODUCT_TYPES = {
    "library": ProductType.LIBRARY,
    "executable": ProductType.EXECUTABLE,
    "plugin": ProductType.PLUGIN,
}

TARGET_TYPES = {
    "target": TargetType.REGULAR,
    "testTarget": TargetType.TEST,
    "executableTarget": TargetType.EXECUTABLE,
    "plugin": TargetType.PLUGIN,
    "systemLibrary": TargetType.SYSTEM,
    "binaryTarget": TargetType.BINARY,
}


class ManifestLoader(ABC):
    @abstractmethod
    def load(self, source: str, origin: str = "Package.swift") -> Manifest:
        """parse manifest source text; raises ManifestParsingError on bad input."""
        pass


class DefaultManifestLoader(ManifestLoader):
    """
    loads the declarative part of a Package.swift manifest.

    the manifest is never executed: only the `let package = Package(...)`
    expression is read, which covers manifests that do not compute their
    contents.
    """

    def __init__(self):
        self.tokenizer = ManifestTokenizer()

    def load(self, source: str, origin: str = "Package.swift") -> Manifest:
        tools_version = self._tools_version(source, origin)

        tokens = self.tokenizer.significant(self.tokenizer.tokenize(source))
        parser = ManifestParser(tokens)
        try:
            declaration = parser.find_binding("package")
        except ParseError as e:
            line = source.count("\n", 0, e.position) + 1
            raise ManifestParsingError(f"{origin}:{line}: {e}") from e

        if not isinstance(declaration, CallNode) or declaration.callee_name != "Package":
            raise ManifestParsingError(f"{origin}: no 'let package = Package(...)' declaration found")

        try:
            manifest = Manifest(
                name=self._string(declaration.argument("name"), "name"),
                tools_version=str(tools_version),
                products=[self._product(node) for node in self._array(declaration.argument("products"))],
                targets=[self._target(node) for node in self._array(declaration.argument("targets"))],
                swift_language_versions=self._language_versions(declaration.argument("swiftLanguageVersions")),
            )
        except ValueError as e:
            raise ManifestParsingError(f"{origin}: {e}") from e

        logger.debug(f"loaded manifest {manifest.name} (tools-version {manifest.tools_version}) from {origin}")
        return manifest

    def _tools_version(self, source: str, origin: str) -> Version:
        first_line = source.lstrip("\ufeff").split("\n", 1)[0].strip()
        match = TOOLS_VERSION_PATTERN.match(first_line)
        if not match:
            raise ManifestParsingError(f"{origin}: missing or malformed swift-tools-version comment")
        try:
            version = Version(match.group(1))
        except InvalidVersion as e:
            raise ManifestParsingError(f"{origin}: invalid tools-version '{match.group(1)}'") from e
        if version < MINIMUM_TOOLS_VERSION or version.release[:2] > CURRENT_TOOLS_VERSION.release[:2]:
            raise ManifestParsingError(
                f"{origin}: tools-version {version} is not supported "
                f"(supported: {MINIMUM_TOOLS_VERSION} to {CURRENT_TOOLS_VERSION})"
            )
        return version

    def _string(self, node: Optional[Node], what: str) -> str:
        if not isinstance(node, StringNode):
            raise ValueError(f"'{what}' must be a string literal")
        return node.value

    def _array(self, node: Optional[Node]) -> List[Node]:
        if node is None:
            return []
        if not isinstance(node, ArrayNode):
            raise ValueError("expected an array literal")
        return node.items

    def _member_call(self, node: Node, kinds: dict, what: str) -> CallNode:
        if (
            not isinstance(node, CallNode)
            or not isinstance(node.callee, MemberNode)
            or node.callee.base is not None
            or node.callee.name not in kinds
        ):
            raise ValueError(f"unsupported {what} declaration {node!r}")
        return node

    def _product(self, node: Node) -> Product:
        call = self._member_call(node, PRODUCT_TYPES, "product")
        product_type = PRODUCT_TYPES[call.callee_name]
        library_type = None
        if product_type == ProductType.LIBRARY:
            type_node = call.argument("type")
            if type_node is None:
                library_type = LibraryType.AUTOMATIC
            elif isinstance(type_node, MemberNode):
                library_type = LibraryType(type_node.name)
            else:
                raise ValueError(f"unsupported library type {type_node!r}")
        return Product(
            name=self._string(call.argument("name"), "name"),
            type=product_type,
            library_type=library_type,
            targets=[self._string(t, "targets") for t in self._array(call.argument("targets"))],
        )

    def _target(self, node: Node) -> Target:
        call = self._member_call(node, TARGET_TYPES, "target")
        return Target(
            name=self._string(call.argument("name"), "name"),
            type=TARGET_TYPES[call.callee_name],
            dependencies=[self._dependency(d) for d in self._array(call.argument("dependencies"))],
        )

    def _dependency(self, node: Node) -> str:
        # "Name", .target(name: "Name"), .product(name: "Name", package: "pkg"), .byName(name: "Name")
        if isinstance(node, StringNode):
            return node.value
        if isinstance(node, CallNode) and isinstance(node.callee, MemberNode):
            return self._string(node.argument("name"), "dependency name")
        raise ValueError(f"unsupported target dependency {node!r}")

    def _language_versions(self, node: Optional[Node]) -> Optional[List[str]]:
        if node is None:
            return None
        versions = []
        for item in self._array(node):
            if isinstance(item, MemberNode) and item.base is None and re.match(r"^v\d+(_\d+)?$", item.name):
                versions.append(item.name[1:].replace("_", "."))
            elif isinstance(item, CallNode) and item.callee_name == "version":
                versions.append(self._string(item.argument(None), "version"))
            else:
                raise ValueError(f"unsupported language version {item!r}")
        return versions
