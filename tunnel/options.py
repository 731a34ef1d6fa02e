"""
Closed option sets for MST tunnel configuration.

WARNING: Cipher and Digest values must match OpenSSL algorithm
names exactly (case-sensitive). The engine passes them through
to the TLS/crypto library unchanged.
"""

from enum import Enum, IntEnum

from cryptography.hazmat.primitives import hashes


class Cipher(str, Enum):
    """Data channel encryption algorithm."""

    AES128CBC = 'AES-128-CBC'
    AES192CBC = 'AES-192-CBC'
    AES256CBC = 'AES-256-CBC'
    AES128GCM = 'AES-128-GCM'
    AES192GCM = 'AES-192-GCM'
    AES256GCM = 'AES-256-GCM'

    @property
    def key_size(self):
        """Key size in bits."""
        return int(self.value.split('-')[1])

    @property
    def embeds_digest(self):
        """Digest should be ignored when this is True."""
        return self.value.endswith('-GCM')

    @property
    def generic_name(self):
        return 'AES-GCM' if self.embeds_digest else 'AES-CBC'

    def __str__(self):
        return self.value


_HASH_ALGORITHMS = {
    'SHA1': hashes.SHA1,
    'SHA224': hashes.SHA224,
    'SHA256': hashes.SHA256,
    'SHA384': hashes.SHA384,
    'SHA512': hashes.SHA512,
}


class Digest(str, Enum):
    """HMAC message digest algorithm."""

    SHA1 = 'SHA1'
    SHA224 = 'SHA224'
    SHA256 = 'SHA256'
    SHA384 = 'SHA384'
    SHA512 = 'SHA512'

    @property
    def generic_name(self):
        return 'HMAC'

    def hash_algorithm(self):
        """Return the matching `cryptography` hash algorithm instance."""
        return _HASH_ALGORITHMS[self.value]()

    def __str__(self):
        return f"{self.generic_name}-{self.value}"


class CompressionFraming(IntEnum):
    """Compression framing, disabled by default."""

    DISABLED = 0
    COMP_LZO = 1     # --comp-lzo
    COMPRESS = 2     # --compress
    COMPRESS_V2 = 3  # --compress with v2 framing

    def __str__(self):
        if self is CompressionFraming.COMP_LZO:
            return 'comp-lzo'
        if self in (CompressionFraming.COMPRESS, CompressionFraming.COMPRESS_V2):
            return 'compress'
        return 'disabled'


class CompressionAlgorithm(IntEnum):
    """Compression algorithm, disabled by default."""

    DISABLED = 0
    LZO = 1
    OTHER = 2

    def __str__(self):
        return {0: 'disabled', 1: 'lzo', 2: 'other'}[self.value]


class RoutingPolicy(str, Enum):
    """Policies for redirecting traffic through the VPN gateway."""

    IPV4 = 'IPv4'              # All IPv4 traffic goes through the VPN
    IPV6 = 'IPv6'              # All IPv6 traffic goes through the VPN
    BLOCK_LOCAL = 'blockLocal'  # Block LAN while connected


class PullMask(str, Enum):
    """Setting categories the server may push to the client."""

    ROUTES = 'routes'
    DNS = 'dns'
    PROXY = 'proxy'


class DNSProtocol(str, Enum):
    PLAIN = 'plain'
    HTTPS = 'https'
    TLS = 'tls'


class SocketType(str, Enum):
    """Endpoint transport."""

    UDP = 'UDP'
    TCP = 'TCP'
    UDP4 = 'UDP4'
    TCP4 = 'TCP4'
    UDP6 = 'UDP6'
    TCP6 = 'TCP6'


class TLSWrapStrategy(str, Enum):
    AUTH = 'auth'    # --tls-auth
    CRYPT = 'crypt'  # --tls-crypt


class XORKind(str, Enum):
    """Variants of the XOR scrambling patch."""

    XORMASK = 'xormask'
    XORPTRPOS = 'xorptrpos'
    REVERSE = 'reverse'
    OBFUSCATE = 'obfuscate'

    @property
    def needs_mask(self):
        return self in (XORKind.XORMASK, XORKind.OBFUSCATE)
