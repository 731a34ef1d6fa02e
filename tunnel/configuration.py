"""
Tunnel configuration: mutable builder and immutable snapshot.

A ConfigurationBuilder collects settings field by field; every field
is optional and None means "not specified". build() copies the
fields into a frozen Configuration, which the protocol engine reads
for the lifetime of one connection attempt.

Configuration exposes derived views on top of the stored fields:
- fallback_* accessors substitute protocol defaults for unset fields
- pull_mask resolves which settings the server may push
- processed_remotes() shuffles and/or prefixes the endpoint list

Thread safety: builders are single-writer. Configurations never
change and may be shared between threads. processed_remotes() draws
fresh entropy on each call, so results differ between calls when
randomization is enabled.
"""

import json
import random
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from tunnel.constants import (
    LEGACY_SEARCH_DOMAIN_KEY, RANDOM_HOSTNAME_PREFIX_LENGTH, SEARCH_DOMAINS_KEY
)
from tunnel.errors import CredentialsError, ParameterError, PRNGInitializationError
from tunnel.models import (
    CryptoContainer, Endpoint, IPv4Route, IPv4Settings, IPv6Route,
    IPv6Settings, Proxy, TLSWrap, XORMethod
)
from tunnel.options import (
    Cipher, CompressionAlgorithm, CompressionFraming, Digest, DNSProtocol,
    PullMask, RoutingPolicy
)

logger = structlog.get_logger(__name__)

_system_random = random.SystemRandom()


class Fallback:
    """Protocol defaults for fields left unset."""

    CIPHER = Cipher.AES128CBC
    DIGEST = Digest.SHA1
    COMPRESSION_FRAMING = CompressionFraming.DISABLED
    COMPRESSION_ALGORITHM = CompressionAlgorithm.DISABLED


FALLBACKS = {
    'cipher': Fallback.CIPHER,
    'digest': Fallback.DIGEST,
    'compression_framing': Fallback.COMPRESSION_FRAMING,
    'compression_algorithm': Fallback.COMPRESSION_ALGORITHM,
}


class SettingOrigin(str, Enum):
    """Where the effective value of a setting comes from."""

    EXPLICIT = 'explicit'    # Set by the caller
    DEFAULTED = 'defaulted'  # Unset, protocol fallback applies
    UNSET = 'unset'          # Unset, no fallback


# Document keys that don't follow plain camelCase
_DOCUMENT_KEYS = {
    'checks_eku': 'checksEKU',
    'checks_san_host': 'checksSANHost',
    'uses_pia_patches': 'usesPIAPatches',
    'is_dns_enabled': 'isDNSEnabled',
    'dns_https_url': 'dnsHTTPSURL',
    'dns_tls_server_name': 'dnsTLSServerName',
    'proxy_auto_configuration_url': 'proxyAutoConfigurationURL',
}


def document_key(name):
    """Map a field name to its key in the configuration document."""
    return _DOCUMENT_KEYS.get(name) or to_camel(name)


class Settings(BaseModel):
    """Field set shared by ConfigurationBuilder and Configuration."""

    model_config = ConfigDict(
        extra='forbid',
        alias_generator=document_key,
        populate_by_name=True,
    )

    # General
    cipher: Optional[Cipher] = None
    data_ciphers: Optional[Tuple[Cipher, ...]] = None  # OpenVPN 2.5 data-ciphers
    digest: Optional[Digest] = None
    compression_framing: Optional[CompressionFraming] = None
    compression_algorithm: Optional[CompressionAlgorithm] = None
    ca: Optional[CryptoContainer] = None
    client_certificate: Optional[CryptoContainer] = None
    client_key: Optional[CryptoContainer] = None
    tls_wrap: Optional[TLSWrap] = None
    tls_security_level: Optional[int] = None  # 0 = lowest
    keep_alive_interval: Optional[float] = None  # Seconds
    keep_alive_timeout: Optional[float] = None
    renegotiates_after: Optional[float] = None

    # Client
    remotes: Optional[Tuple[Endpoint, ...]] = None
    checks_eku: Optional[bool] = None
    checks_san_host: Optional[bool] = None
    san_host: Optional[str] = None
    randomize_endpoint: Optional[bool] = None
    randomize_hostnames: Optional[bool] = None
    uses_pia_patches: Optional[bool] = None
    mtu: Optional[int] = None
    auth_user_pass: Optional[bool] = None

    # Server
    auth_token: Optional[str] = None
    peer_id: Optional[int] = Field(default=None, ge=0, le=0xFFFFFFFF)

    # Routing
    ipv4: Optional[IPv4Settings] = None
    ipv6: Optional[IPv6Settings] = None
    routes4: Optional[Tuple[IPv4Route, ...]] = None
    routes6: Optional[Tuple[IPv6Route, ...]] = None
    is_dns_enabled: Optional[bool] = None
    dns_protocol: Optional[DNSProtocol] = None
    dns_servers: Optional[Tuple[str, ...]] = None
    dns_https_url: Optional[str] = None
    dns_tls_server_name: Optional[str] = None
    dns_domain: Optional[str] = None
    search_domains: Optional[Tuple[str, ...]] = None
    proxy_auto_configuration_url: Optional[str] = None
    is_proxy_enabled: Optional[bool] = None
    http_proxy: Optional[Proxy] = None
    https_proxy: Optional[Proxy] = None
    proxy_bypass_domains: Optional[Tuple[str, ...]] = None
    routing_policies: Optional[Tuple[RoutingPolicy, ...]] = None
    no_pull_mask: Optional[Tuple[PullMask, ...]] = None

    # Extra
    xor_method: Optional[XORMethod] = None

    def field_values(self):
        """Return all fields as a {name: value} dict, None included."""
        return {name: getattr(self, name) for name in Settings.model_fields}


class ConfigurationBuilder(Settings):
    """
    Mutable draft of a Configuration.

    Assignments are type-checked, lists are stored as tuples.

    Example:
        >>> builder = ConfigurationBuilder()
        >>> builder.cipher = Cipher.AES256GCM
        >>> builder.remotes = ['vpn.example.com:UDP:1194']
        >>> configuration = builder.build()
    """

    model_config = ConfigDict(validate_assignment=True)

    def __init__(self, with_fallbacks=False, **fields):
        """
        Args:
            with_fallbacks (bool): Seed cipher, digest and compression
                fields with protocol fallbacks when not given
            **fields: Initial field values
        """
        super().__init__(**fields)
        if with_fallbacks:
            for name, value in FALLBACKS.items():
                if getattr(self, name) is None:
                    setattr(self, name, value)

    def build(self):
        """Copy the current fields into an immutable Configuration."""
        return Configuration(**self.field_values())


class Configuration(Settings):
    """Immutable tunnel configuration consumed by the protocol engine."""

    model_config = ConfigDict(frozen=True)

    @property
    def fallback_cipher(self):
        return self.cipher if self.cipher is not None else Fallback.CIPHER

    @property
    def fallback_digest(self):
        return self.digest if self.digest is not None else Fallback.DIGEST

    @property
    def fallback_compression_framing(self):
        if self.compression_framing is not None:
            return self.compression_framing
        return Fallback.COMPRESSION_FRAMING

    @property
    def fallback_compression_algorithm(self):
        if self.compression_algorithm is not None:
            return self.compression_algorithm
        return Fallback.COMPRESSION_ALGORITHM

    def origin(self, name):
        """
        Tell whether a setting is explicit, defaulted or unset.

        Args:
            name (str): Field name, e.g. 'cipher'

        Returns:
            SettingOrigin: EXPLICIT if stored, DEFAULTED if a fallback
            applies, UNSET otherwise

        Raises:
            ParameterError: If the name is not a configuration field
        """
        if name not in Settings.model_fields:
            raise ParameterError(name, f"Unknown configuration field: {name}")
        if getattr(self, name) is not None:
            return SettingOrigin.EXPLICIT
        if name in FALLBACKS:
            return SettingOrigin.DEFAULTED
        return SettingOrigin.UNSET

    @property
    def pull_mask(self):
        """
        Settings the server is allowed to push.

        Everything not listed in no_pull_mask. When every category is
        excluded the result is None, the same value callers get for
        "no restriction".

        Returns:
            frozenset[PullMask] or None
        """
        everything = frozenset(PullMask)
        if self.no_pull_mask is None:
            return everything
        pulled = everything - frozenset(self.no_pull_mask)
        return pulled or None

    def processed_remotes(self, random_bytes=None):
        """
        Endpoints the engine should try, in order.

        Shuffles when randomize_endpoint is set, then prefixes each
        hostname with random bytes when randomize_hostnames is set.
        Endpoints whose prefix cannot be generated are logged and
        dropped.

        Args:
            random_bytes (callable): Entropy source for hostname prefixes,
                defaults to crypto.random_bytes

        Returns:
            tuple[Endpoint] or None: None if no remotes are configured.
            May be empty if every prefix failed.
        """
        if self.remotes is None:
            return None

        remotes = list(self.remotes)
        if self.randomize_endpoint:
            _system_random.shuffle(remotes)

        if self.randomize_hostnames:
            prefixed = []
            for remote in remotes:
                try:
                    prefixed.append(
                        remote.with_random_prefix(RANDOM_HOSTNAME_PREFIX_LENGTH, random_bytes)
                    )
                except PRNGInitializationError as e:
                    logger.warning(
                        "Could not prepend random prefix, dropping endpoint",
                        endpoint=str(remote),
                        error=str(e),
                    )
            remotes = prefixed

        return tuple(remotes)

    def require_credentials(self, credentials):
        """
        Check that credentials are available when the server needs them.

        Args:
            credentials (Credentials or None): Credentials from the host app

        Returns:
            Credentials or None: The credentials passed in

        Raises:
            CredentialsError: If auth_user_pass is set and credentials are
                missing or have an empty username
        """
        if not self.auth_user_pass:
            return credentials
        if credentials is None:
            raise CredentialsError("username/password required by server")
        if not credentials.username:
            raise CredentialsError("empty username")
        return credentials

    def builder(self, with_fallbacks=False):
        """
        Return an editable builder initialized with this configuration.

        Args:
            with_fallbacks (bool): Fill unset cipher, digest and
                compression fields with protocol fallbacks

        Returns:
            ConfigurationBuilder
        """
        return ConfigurationBuilder(with_fallbacks=with_fallbacks, **self.field_values())

    def to_document(self):
        """Serialize to a dict; unset fields have no key."""
        return self.model_dump(mode='json', by_alias=True, exclude_none=True)

    def to_json(self, indent=None):
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=indent)

    @classmethod
    def from_document(cls, document):
        """
        Build a Configuration from a document dict.

        Legacy keys are migrated first (see migrate_legacy_fields).

        Raises:
            ParameterError: If a key is unknown or a value has the wrong shape.
                The error's name is the offending document key.
        """
        document = migrate_legacy_fields(document)
        try:
            return cls.model_validate(document)
        except ValidationError as e:
            raise ParameterError(_error_key(e), f"Invalid configuration document: {e}") from e

    @classmethod
    def from_json(cls, text):
        try:
            document = json.loads(text)
        except json.JSONDecodeError as e:
            raise ParameterError('document', f"Configuration is not valid JSON: {e}") from e
        return cls.from_document(document)


def _error_key(error):
    errors = error.errors()
    if errors and errors[0]['loc']:
        return str(errors[0]['loc'][0])
    return 'document'


def migrate_legacy_fields(document):
    """
    Convert deprecated document keys to their current form.

    A single 'searchDomain' string becomes 'searchDomains': [value],
    unless 'searchDomains' is already present. The legacy key is
    always removed. The input dict is not modified.

    Args:
        document (dict): Configuration document

    Returns:
        dict: Migrated copy

    Raises:
        ParameterError: If the document is not a dict
    """
    if not isinstance(document, dict):
        raise ParameterError('document', "Configuration document must be an object")

    migrated = dict(document)
    if LEGACY_SEARCH_DOMAIN_KEY in migrated:
        search_domain = migrated.pop(LEGACY_SEARCH_DOMAIN_KEY)
        if search_domain is not None and SEARCH_DOMAINS_KEY not in migrated:
            migrated[SEARCH_DOMAINS_KEY] = [search_domain]
            logger.info("Migrated legacy search domain", key=LEGACY_SEARCH_DOMAIN_KEY)
    return migrated


def load_configuration(path):
    """
    Load a Configuration from a JSON file.

    Raises:
        ParameterError: If the file cannot be read ('path') or parsed
    """
    try:
        text = Path(path).read_text(encoding='utf-8')
    except OSError as e:
        raise ParameterError('path', f"Cannot read configuration {path}: {e}") from e
    return Configuration.from_json(text)
