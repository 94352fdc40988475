"""In-memory field model for a secret store.

A field is a (service, username, password) triple keyed by service.
Serialization is canonical JSON so that an unchanged field set always
produces identical bytes.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Iterator

from .exceptions import CorruptStoreError, FieldNotFoundError
from .secure import SecretBuffer

FIELDS_FORMAT_VERSION = 1


@dataclass
class Field:
    """A single service credential."""

    service: str
    username: str
    secret: SecretBuffer = field(repr=False)

    @property
    def password(self) -> str:
        """Cleartext password. Never log this."""
        return self.secret.decode("utf-8")

    def as_tuple(self) -> tuple[str, str, str]:
        """Return (service, username, password)."""
        return (self.service, self.username, self.password)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "service": self.service,
            "username": self.username,
            "password": self.password,
        }

    def wipe(self) -> None:
        """Zero the password buffer."""
        self.secret.wipe()


class FieldSet:
    """
    Collection of fields keyed by service name.

    Adding a field whose service already exists replaces it. Callers that
    want to ask before overwriting should check exists() first.
    """

    def __init__(self):
        self._fields: dict[str, Field] = {}

    def __len__(self) -> int:
        return len(self._fields)

    def __contains__(self, service: object) -> bool:
        return service in self._fields

    def __iter__(self) -> Iterator[Field]:
        for service in self.list_services():
            yield self._fields[service]

    def exists(self, service: str) -> bool:
        """Check whether a field exists for a service."""
        return service in self._fields

    def add(self, service: str, username: str, password: str | bytes | SecretBuffer) -> None:
        """
        Insert or overwrite the field for a service.

        Args:
            service: Unique service identifier
            username: Username for the service
            password: Password (str, bytes or SecretBuffer)
        """
        if not service:
            raise ValueError("Service name must not be empty")

        if isinstance(password, SecretBuffer):
            secret = SecretBuffer(password.value)
        else:
            secret = SecretBuffer(password)

        previous = self._fields.get(service)
        self._fields[service] = Field(service=service, username=username, secret=secret)
        if previous is not None:
            previous.wipe()

    def remove(self, service: str) -> None:
        """
        Remove the field for a service.

        Raises:
            FieldNotFoundError: If no such field exists
        """
        entry = self._fields.pop(service, None)
        if entry is None:
            raise FieldNotFoundError(service)
        entry.wipe()

    def get(self, service: str) -> tuple[str, str, str]:
        """
        Get (service, username, password) for a service.

        Raises:
            FieldNotFoundError: If no such field exists
        """
        entry = self._fields.get(service)
        if entry is None:
            raise FieldNotFoundError(service)
        return entry.as_tuple()

    def list_services(self) -> list[str]:
        """List service names in sorted order."""
        return sorted(self._fields)

    def wipe(self) -> None:
        """Zero every password and empty the set."""
        for entry in self._fields.values():
            entry.wipe()
        self._fields.clear()

    def to_bytes(self) -> bytearray:
        """
        Serialize to canonical JSON bytes.

        Format:
            {"fields":[{"password":..,"service":..,"username":..}, ...],"version":1}
        Keys sorted, fields sorted by service, compact separators, UTF-8.
        """
        doc = {
            "version": FIELDS_FORMAT_VERSION,
            "fields": [entry.to_dict() for entry in self],
        }
        text = json.dumps(doc, separators=(",", ":"), sort_keys=True, ensure_ascii=False)
        return bytearray(text.encode("utf-8"))

    @classmethod
    def from_bytes(cls, data: bytes | bytearray) -> "FieldSet":
        """
        Deserialize from bytes produced by to_bytes().

        Raises:
            CorruptStoreError: If the data is not a valid field document
        """
        try:
            doc = json.loads(bytes(data).decode("utf-8"))
            entries = doc["fields"]
            fields = cls()
            for entry in entries:
                values = (entry["service"], entry["username"], entry["password"])
                if not all(isinstance(v, str) for v in values):
                    raise TypeError("field values must be strings")
                fields.add(*values)
        except (UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise CorruptStoreError(f"Invalid field data: {type(e).__name__}") from None
        return fields

