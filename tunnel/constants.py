"""
Protocol constants for MST tunnel configuration.

Defines sizes, markers and document keys shared by the
configuration layer. Values here are part of the wire/document
contract and must not change casually.
"""

# Hostname randomization
RANDOM_HOSTNAME_PREFIX_LENGTH = 6  # Random bytes prepended to remote hostnames

# OpenVPN static key (tls-auth / tls-crypt)
STATIC_KEY_SIZE = 256  # 2048 bits
STATIC_KEY_BEGIN = '-----BEGIN OpenVPN Static key V1-----'
STATIC_KEY_END = '-----END OpenVPN Static key V1-----'
STATIC_KEY_LINE_LENGTH = 32  # Hex characters per line in file content

# PEM markers
PEM_ENCRYPTED_MARKER = 'ENCRYPTED'

# Legacy document keys (converted once at load time)
LEGACY_SEARCH_DOMAIN_KEY = 'searchDomain'
SEARCH_DOMAINS_KEY = 'searchDomains'
