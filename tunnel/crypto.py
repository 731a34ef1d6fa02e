"""
Cryptographic helpers for MST tunnel configuration.
Uses PyNaCl (libsodium) for secure random byte generation and
`cryptography` for PEM key handling.
"""
from nacl.utils import random
from cryptography.hazmat.primitives import serialization

from tunnel.constants import (
    STATIC_KEY_SIZE, STATIC_KEY_BEGIN, STATIC_KEY_END, STATIC_KEY_LINE_LENGTH
)
from tunnel.errors import (
    PRNGInitializationError, CertificateSerializationError, ParameterError
)


def random_bytes(length):
    """
    Generate cryptographically secure random bytes.

    Args:
        length (int): Number of bytes

    Returns:
        bytes: `length` random bytes

    Raises:
        PRNGInitializationError: If the entropy source fails
    """
    if length < 0:
        raise ValueError(f"Length must be non-negative, got {length}")
    try:
        return random(length)
    except Exception as e:
        raise PRNGInitializationError(f"Random source failed: {e}") from e


def decrypt_private_key(pem, passphrase):
    """
    Re-serialize an encrypted PEM private key without encryption.

    Args:
        pem (str): Encrypted private key (PEM)
        passphrase (str): Passphrase protecting the key

    Returns:
        str: Unencrypted PKCS#8 private key (PEM)

    Raises:
        CertificateSerializationError: If the key cannot be loaded or written
    """
    if passphrase is None:
        raise CertificateSerializationError("Passphrase required to decrypt private key")
    try:
        key = serialization.load_pem_private_key(
            pem.encode('ascii'),
            password=passphrase.encode('utf-8')
        )
        decrypted = key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption()
        )
    except (ValueError, TypeError, UnicodeError) as e:
        raise CertificateSerializationError(f"Unable to decrypt private key: {e}") from e
    return decrypted.decode('ascii')


def parse_static_key(content):
    """
    Parse an OpenVPN static key file.

    Format:
    -----BEGIN OpenVPN Static key V1-----
    <16 lines of 32 hex characters>
    -----END OpenVPN Static key V1-----

    Comment lines ('#') and blank lines are ignored.

    Args:
        content (str): File content

    Returns:
        bytes: 256-byte key

    Raises:
        ParameterError: If the block is missing or has the wrong size
    """
    lines = [line.strip() for line in content.splitlines()]
    lines = [line for line in lines if line and not line.startswith('#')]

    try:
        begin = lines.index(STATIC_KEY_BEGIN)
        end = lines.index(STATIC_KEY_END)
    except ValueError:
        raise ParameterError('tlsWrap', "Static key markers not found") from None

    try:
        data = bytes.fromhex(''.join(lines[begin + 1:end]))
    except ValueError as e:
        raise ParameterError('tlsWrap', f"Static key is not valid hex: {e}") from e

    if len(data) != STATIC_KEY_SIZE:
        raise ParameterError(
            'tlsWrap',
            f"Static key must be {STATIC_KEY_SIZE} bytes, got {len(data)}"
        )
    return data


def format_static_key(data):
    """Serialize a 256-byte key to OpenVPN static key file content."""
    if len(data) != STATIC_KEY_SIZE:
        raise ValueError(f"Static key must be {STATIC_KEY_SIZE} bytes")
    hex_data = data.hex()
    body = [
        hex_data[i:i + STATIC_KEY_LINE_LENGTH]
        for i in range(0, len(hex_data), STATIC_KEY_LINE_LENGTH)
    ]
    return '\n'.join([STATIC_KEY_BEGIN, *body, STATIC_KEY_END]) + '\n'
