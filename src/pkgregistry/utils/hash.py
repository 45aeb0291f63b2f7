import hashlib
from abc import ABC, abstractmethod


class ChecksumAlgorithm(ABC):
    name: str = ""

    @abstractmethod
    def hash(self, data: bytes) -> str:
        """returns the lowercase hexadecimal digest of data."""
        pass


class HashlibChecksum(ChecksumAlgorithm):
    """
    checksum backed by any algorithm hashlib knows about.
    """

    def __init__(self, name: str):
        # fail early on unknown algorithms instead of at download time
        hashlib.new(name)
        self.name = name

    def hash(self, data: bytes) -> str:
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise TypeError(f"expected bytes, got {type(data).__name__}")
        return hashlib.new(self.name, data).hexdigest()

    def __repr__(self):
        return f"{type(self).__name__}({self.name!r})"


class SHA256(HashlibChecksum):
    def __init__(self):
        super().__init__("sha256")


def checksum_algorithm(name: str) -> ChecksumAlgorithm:
    normalized = name.lower().replace("-", "")
    if normalized == "sha256":
        return SHA256()
    return HashlibChecksum(normalized)
