"""
Error taxonomy for MST tunnel configuration.

Two disjoint sets live here:

- Assembly errors (ProviderConfigurationError and subclasses), raised
  synchronously while a configuration or run-time environment is being
  put together. They indicate a defect in the caller's input and are
  never retried.
- Session failure causes (ProviderError), the closed set of identifiers
  the protocol engine reports when a tunnel fails or terminates. The
  host application branches on the identifier.
"""

from enum import Enum


class ProviderConfigurationError(Exception):
    """Base class for configuration assembly errors."""
    pass


class ParameterError(ProviderConfigurationError):
    """Raised when a configuration field is missing or malformed."""

    def __init__(self, name, message=None):
        self.name = name
        super().__init__(message or f"Invalid or missing parameter: {name}")


class CredentialsError(ProviderConfigurationError):
    """Raised when credentials are missing or inaccessible."""

    def __init__(self, details):
        self.details = details
        super().__init__(f"Credentials unavailable: {details}")


class PRNGInitializationError(ProviderConfigurationError):
    """Raised when the random number source cannot produce bytes."""
    pass


class CertificateSerializationError(ProviderConfigurationError):
    """Raised when a TLS certificate or key cannot be serialized."""
    pass


class ProviderError(str, Enum):
    """Causes of a tunnel disconnection, as reported by the engine."""

    DNS_FAILURE = 'dnsFailure'                              # Endpoint could not be resolved
    EXHAUSTED_ENDPOINTS = 'exhaustedEndpoints'              # No more endpoints to try
    SOCKET_ACTIVITY = 'socketActivity'                      # Socket never became active
    AUTHENTICATION = 'authentication'                       # Credentials rejected
    TLS_INITIALIZATION = 'tlsInitialization'                # e.g. malformed CA or client PEMs
    TLS_SERVER_VERIFICATION = 'tlsServerVerification'
    TLS_HANDSHAKE = 'tlsHandshake'
    ENCRYPTION_INITIALIZATION = 'encryptionInitialization'  # e.g. PRNG, algorithms
    ENCRYPTION_DATA = 'encryptionData'
    LZO = 'lzo'
    SERVER_COMPRESSION = 'serverCompression'                # Unsupported algorithm pushed
    TIMEOUT = 'timeout'
    LINK_ERROR = 'linkError'
    ROUTING = 'routing'                                     # Routing info missing/incomplete
    NETWORK_CHANGED = 'networkChanged'                      # e.g. WiFi -> cellular
    GATEWAY_UNATTAINABLE = 'gatewayUnattainable'
    SERVER_SHUTDOWN = 'serverShutdown'
    UNEXPECTED_REPLY = 'unexpectedReply'

    def __str__(self):
        return self.value

    @classmethod
    def from_identifier(cls, identifier):
        """
        Look up a cause by its external identifier.

        Args:
            identifier (str): Identifier such as 'tlsHandshake'

        Returns:
            ProviderError: The matching cause

        Raises:
            ValueError: If the identifier is not part of the closed set
        """
        try:
            return cls(identifier)
        except ValueError:
            raise ValueError(f"Unknown session failure cause: {identifier!r}") from None


class SessionFailure(Exception):
    """Raised by the protocol engine when a tunnel fails."""

    def __init__(self, cause, message=None):
        self.cause = ProviderError(cause)
        super().__init__(message or str(self.cause))
