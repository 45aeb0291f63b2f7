import json
from pathlib import Path
from typing import Dict, Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, Field, ValidationError, field_validator

from .domain.errors import InsecureRegistry, NoRegistryConfigured
from .domain.identity import PackageIdentity
from .net.http import HTTPClientConfiguration

CONFIG_DIR = Path.home() / ".pkgregistry"
CONFIG_FILE = CONFIG_DIR / "registries.json"

DEFAULT_REGISTRY_KEY = "[default]"
CONFIGURATION_VERSION = 1


class Registry(BaseModel):
    url: str

    @field_validator("url")
    @classmethod
    def _require_absolute(cls, value: str) -> str:
        parts = urlsplit(value)
        if not parts.scheme or not parts.netloc:
            raise ValueError(f"registry url must be absolute: {value!r}")
        return value.rstrip("/")

    @property
    def is_secure(self) -> bool:
        return urlsplit(self.url).scheme == "https"


class SecurityPolicy(BaseModel):
    allow_insecure_http: bool = False


class RegistryConfiguration(BaseModel):
    """which registry serves which scope, plus client-wide policy."""
    version: int = CONFIGURATION_VERSION
    registries: Dict[str, Registry] = Field(default_factory=dict)
    security: SecurityPolicy = Field(default_factory=SecurityPolicy)
    http: HTTPClientConfiguration = Field(default_factory=HTTPClientConfiguration)

    @property
    def default_registry(self) -> Optional[Registry]:
        return self.registries.get(DEFAULT_REGISTRY_KEY)

    @property
    def scoped_registries(self) -> Dict[str, Registry]:
        return {k: v for k, v in self.registries.items() if k != DEFAULT_REGISTRY_KEY}

    def set_registry(self, url: str, scope: Optional[str] = None):
        key = scope.lower() if scope else DEFAULT_REGISTRY_KEY
        self.registries[key] = Registry(url=url)

    def registry_for_scope(self, scope: Optional[str]) -> Optional[Registry]:
        if scope:
            for key, registry in self.scoped_registries.items():
                if key.lower() == scope.lower():
                    return registry
        return self.default_registry

    def registry_for(self, identity: Optional[PackageIdentity] = None) -> Registry:
        """
        resolve the registry serving identity.

        a scope-specific registry wins over the default one; having neither
        is a configuration error, as is a plain-http registry unless the
        security policy allows it.
        """
        scope = identity.scope if identity is not None else None
        registry = self.registry_for_scope(scope)
        if registry is None:
            raise NoRegistryConfigured(str(identity) if identity is not None else None)
        if not registry.is_secure and not self.security.allow_insecure_http:
            raise InsecureRegistry(registry.url)
        return registry


def load_configuration(path: Path = CONFIG_FILE) -> RegistryConfiguration:
    """load registry configuration, treating a missing or unreadable file as empty."""
    if not path.exists():
        return RegistryConfiguration()

    try:
        with open(path, "r") as f:
            data = json.load(f)
        return RegistryConfiguration(**data)
    except (IOError, PermissionError, OSError, json.JSONDecodeError, ValidationError, TypeError):
        return RegistryConfiguration()


def save_configuration(configuration: RegistryConfiguration, path: Path = CONFIG_FILE):
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with open(path, "w") as f:
            f.write(configuration.model_dump_json(indent=2))
    except (IOError, PermissionError, OSError) as e:
        raise RuntimeError(f"failed to write config file: {e}") from e


def set_registry(url: str, scope: Optional[str] = None, path: Path = CONFIG_FILE) -> RegistryConfiguration:
    """set the default (or scope-specific) registry, preserving other settings."""
    configuration = load_configuration(path)
    configuration.set_registry(url, scope)
    save_configuration(configuration, path)
    return configuration
