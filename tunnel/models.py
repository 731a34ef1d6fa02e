"""
Value objects for MST tunnel configuration.

All models are frozen pydantic models compared by value. Their
document form uses camelCase keys; endpoints and PEM containers
collapse to plain strings.
"""

import base64
import binascii
import ipaddress
from typing import Literal, Optional, Tuple

from pydantic import (
    BaseModel, ConfigDict, SecretStr, ValidationError,
    field_serializer, field_validator, model_serializer, model_validator
)
from pydantic.alias_generators import to_camel

from tunnel import crypto
from tunnel.constants import PEM_ENCRYPTED_MARKER, STATIC_KEY_SIZE
from tunnel.errors import ParameterError
from tunnel.options import SocketType, TLSWrapStrategy, XORKind


def _decode_base64(value):
    if isinstance(value, str):
        try:
            return base64.b64decode(value, validate=True)
        except binascii.Error as e:
            raise ValueError(f"Invalid base64 data: {e}") from e
    return value


def _encode_base64(value):
    return base64.b64encode(value).decode('ascii')


class ValueModel(BaseModel):
    """Base for immutable value objects."""

    model_config = ConfigDict(
        frozen=True,
        extra='forbid',
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Endpoint(ValueModel):
    """
    A server endpoint: host label + transport + port.

    Document form: "<address>:<SOCKET>:<port>", e.g. "vpn.example.com:UDP:1194".
    """

    address: str
    socket_type: SocketType
    port: int

    @model_validator(mode='before')
    @classmethod
    def from_string(cls, data):
        if not isinstance(data, str):
            return data
        # rsplit keeps IPv6 literals intact
        parts = data.rsplit(':', 2)
        if len(parts) != 3 or not parts[0]:
            raise ValueError(f"Endpoint must be 'address:SOCKET:port', got {data!r}")
        address, socket_type, port = parts
        # Bracketed IPv6 literal, e.g. "[::1]:UDP:1194"
        if address.startswith('[') and address.endswith(']'):
            address = address[1:-1]
        return {'address': address, 'socket_type': socket_type, 'port': port}

    @field_validator('port')
    @classmethod
    def check_port(cls, port):
        if not (0 < port < 65536):
            raise ValueError(f"Port must be 1-65535, got {port}")
        return port

    @model_serializer
    def to_string(self):
        return str(self)

    def __str__(self):
        return f"{self.address}:{self.socket_type.value}:{self.port}"

    @classmethod
    def parse(cls, text):
        """
        Parse an endpoint from its document form.

        Raises:
            ParameterError: If the string is malformed
        """
        try:
            return cls.model_validate(text)
        except ValidationError as e:
            raise ParameterError('remotes', f"Malformed endpoint {text!r}: {e}") from e

    @property
    def is_hostname(self):
        """False when the address is an IPv4 or IPv6 literal."""
        try:
            ipaddress.ip_address(self.address)
        except ValueError:
            return True
        return False

    def with_random_prefix(self, length, random_bytes=None):
        """
        Return a copy whose hostname carries a random hex prefix.

        IP literals are returned unchanged.

        Args:
            length (int): Number of random bytes in the prefix
            random_bytes (callable): Entropy source, defaults to crypto.random_bytes

        Returns:
            Endpoint: e.g. "a1b2c3d4e5f6.vpn.example.com:UDP:1194"

        Raises:
            PRNGInitializationError: If the entropy source fails
        """
        if not self.is_hostname:
            return self
        source = random_bytes or crypto.random_bytes
        prefix = source(length)
        return self.model_copy(update={'address': f"{prefix.hex()}.{self.address}"})


class CryptoContainer(ValueModel):
    """Opaque PEM payload (CA, certificate or private key)."""

    pem: str

    @model_validator(mode='before')
    @classmethod
    def from_string(cls, data):
        if isinstance(data, str):
            return {'pem': data}
        return data

    @model_serializer
    def to_string(self):
        return self.pem

    @property
    def is_encrypted(self):
        return PEM_ENCRYPTED_MARKER in self.pem

    def decrypted(self, passphrase):
        """
        Return an unencrypted copy of a passphrase-protected private key.

        Raises:
            CertificateSerializationError: If the key cannot be decrypted
        """
        return CryptoContainer(pem=crypto.decrypt_private_key(self.pem, passphrase))


class StaticKey(ValueModel):
    """OpenVPN static key used for TLS wrapping."""

    data: bytes
    direction: Optional[Literal[0, 1]] = None  # None = bidirectional

    @field_validator('data', mode='before')
    @classmethod
    def decode_data(cls, data):
        return _decode_base64(data)

    @field_validator('data')
    @classmethod
    def check_size(cls, data):
        if len(data) != STATIC_KEY_SIZE:
            raise ValueError(f"Static key must be {STATIC_KEY_SIZE} bytes, got {len(data)}")
        return data

    @field_serializer('data', when_used='json')
    def encode_data(self, data):
        return _encode_base64(data)

    @classmethod
    def from_file_content(cls, content, direction=None):
        return cls(data=crypto.parse_static_key(content), direction=direction)

    def to_file_content(self):
        return crypto.format_static_key(self.data)

    def __repr__(self):
        return f"StaticKey(direction={self.direction!r})"


class TLSWrap(ValueModel):
    strategy: TLSWrapStrategy
    key: StaticKey


class IPv4Route(ValueModel):
    destination: str
    mask: str
    gateway: Optional[str] = None

    def __str__(self):
        return f"{self.destination}/{self.mask} {self.gateway or '*'}"


class IPv4Settings(ValueModel):
    address: str
    address_mask: str
    default_gateway: str
    routes: Tuple[IPv4Route, ...] = ()

    def __str__(self):
        return f"addr {self.address} netmask {self.address_mask} gw {self.default_gateway}"


class IPv6Route(ValueModel):
    destination: str
    prefix_length: int
    gateway: Optional[str] = None

    def __str__(self):
        return f"{self.destination}/{self.prefix_length} {self.gateway or '*'}"


class IPv6Settings(ValueModel):
    address: str
    address_prefix_length: int
    default_gateway: str
    routes: Tuple[IPv6Route, ...] = ()

    def __str__(self):
        return f"addr {self.address}/{self.address_prefix_length} gw {self.default_gateway}"


class Proxy(ValueModel):
    address: str
    port: int

    def __str__(self):
        return f"{self.address}:{self.port}"


class Credentials(ValueModel):
    """A username/password pair. The password is hidden from repr."""

    username: str
    password: SecretStr

    @field_serializer('password', when_used='json')
    def reveal_password(self, password):
        return password.get_secret_value()


class XORMethod(ValueModel):
    """XOR scrambling patch; xormask and obfuscate carry a mask."""

    kind: XORKind
    mask: Optional[bytes] = None

    @field_validator('mask', mode='before')
    @classmethod
    def decode_mask(cls, mask):
        return _decode_base64(mask)

    @field_serializer('mask', when_used='json')
    def encode_mask(self, mask):
        return _encode_base64(mask) if mask is not None else None

    @model_validator(mode='after')
    def check_mask(self):
        if self.kind.needs_mask and not self.mask:
            raise ValueError(f"XOR method {self.kind.value} requires a mask")
        if not self.kind.needs_mask and self.mask is not None:
            raise ValueError(f"XOR method {self.kind.value} takes no mask")
        return self
