"""
Human-readable rendering of a tunnel configuration for logs.

is_local=True renders settings known before connecting (fallbacks
included); is_local=False renders only what the server negotiated.

Sensitive values (DNS servers and names, search domains, proxies)
go through the caller's `mask` callable. No masking is done here.
"""

import structlog

from tunnel.errors import ParameterError
from tunnel.options import DNSProtocol


def _time_string(seconds):
    """Format seconds as e.g. '1h 2m 3s'."""
    seconds = int(seconds)
    hours, rest = divmod(seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if seconds or not parts:
        parts.append(f"{seconds}s")
    return ' '.join(parts)


def _masked_list(values, mask):
    return '[' + ', '.join(mask(value) for value in values) + ']'


def _enum_list(values):
    return '[' + ', '.join(value.value for value in values) + ']'


def describe(configuration, is_local, mask=str):
    """
    Render a configuration as a list of log lines.

    Args:
        configuration (Configuration): Configuration to render
        is_local (bool): True for locally known settings, False for
            settings negotiated with the server
        mask (callable): Applied to sensitive values before rendering

    Returns:
        list[str]: One line per setting

    Raises:
        ParameterError: If is_local and no remotes are configured
    """
    c = configuration
    lines = []

    if is_local:
        if c.remotes is None:
            raise ParameterError('remotes', "No remotes set")
        lines.append(f"Remotes: [{', '.join(str(remote) for remote in c.remotes)}]")
    else:
        lines.append(f"IPv4: {c.ipv4 if c.ipv4 is not None else 'not configured'}")
        lines.append(f"IPv6: {c.ipv6 if c.ipv6 is not None else 'not configured'}")
    if c.routes4 is not None:
        lines.append(f"Routes (IPv4): [{', '.join(str(route) for route in c.routes4)}]")
    if c.routes6 is not None:
        lines.append(f"Routes (IPv6): [{', '.join(str(route) for route in c.routes6)}]")

    # Explicit values always, fallbacks only for local settings
    for label, value, fallback in (
        ('Cipher', c.cipher, c.fallback_cipher),
        ('Digest', c.digest, c.fallback_digest),
        ('Compression framing', c.compression_framing, c.fallback_compression_framing),
        ('Compression algorithm', c.compression_algorithm, c.fallback_compression_algorithm),
    ):
        if value is not None:
            lines.append(f"{label}: {str(value)}")
        elif is_local:
            lines.append(f"{label}: {str(fallback)}")

    if is_local:
        lines.append(f"Username authentication: {bool(c.auth_user_pass)}")
        lines.append(
            f"Client verification: {'enabled' if c.client_certificate is not None else 'disabled'}"
        )
        if c.tls_wrap is not None:
            lines.append(f"TLS wrapping: {c.tls_wrap.strategy.value}")
        else:
            lines.append("TLS wrapping: disabled")
        if c.tls_security_level is not None:
            lines.append(f"TLS security level: {c.tls_security_level}")
        else:
            lines.append("TLS security level: default")

    for label, seconds in (
        ('Keep-alive interval', c.keep_alive_interval),
        ('Keep-alive timeout', c.keep_alive_timeout),
        ('Renegotiation', c.renegotiates_after),
    ):
        if seconds is not None and seconds > 0:
            lines.append(f"{label}: {_time_string(seconds)}")
        elif is_local:
            lines.append(f"{label}: never")

    if c.checks_eku:
        lines.append("Server EKU verification: enabled")
    elif is_local:
        lines.append("Server EKU verification: disabled")
    if c.checks_san_host:
        lines.append(f"Host SAN verification: enabled ({c.san_host or '-'})")
    elif is_local:
        lines.append("Host SAN verification: disabled")

    if c.randomize_endpoint:
        lines.append("Randomize endpoint: true")
    if c.randomize_hostnames:
        lines.append("Randomize hostnames: true")

    if c.routing_policies is not None:
        lines.append(f"Gateway: {_enum_list(c.routing_policies)}")
    elif is_local:
        lines.append("Gateway: not configured")

    lines.extend(_describe_dns(c, is_local, mask))

    if c.http_proxy is not None:
        lines.append(f"HTTP proxy: {mask(str(c.http_proxy))}")
    if c.https_proxy is not None:
        lines.append(f"HTTPS proxy: {mask(str(c.https_proxy))}")
    if c.proxy_auto_configuration_url is not None:
        lines.append(f"PAC: {c.proxy_auto_configuration_url}")
    if c.proxy_bypass_domains is not None:
        lines.append(f"Proxy bypass domains: {_masked_list(c.proxy_bypass_domains, mask)}")

    if c.mtu is not None:
        lines.append(f"MTU: {c.mtu}")
    elif is_local:
        lines.append("MTU: default")

    if is_local and c.no_pull_mask is not None:
        lines.append(f"Not pulled: {_enum_list(c.no_pull_mask)}")

    return lines


def _describe_dns(c, is_local, mask):
    lines = []
    if c.dns_protocol is DNSProtocol.HTTPS:
        if c.dns_https_url is not None:
            lines.append(f"DNS over HTTPS: {mask(c.dns_https_url)}")
        elif is_local:
            lines.append("DNS: not configured")
    elif c.dns_protocol is DNSProtocol.TLS:
        if c.dns_tls_server_name is not None:
            lines.append(f"DNS over TLS: {mask(c.dns_tls_server_name)}")
        elif is_local:
            lines.append("DNS: not configured")
    else:
        if c.dns_servers:
            lines.append(f"DNS: {_masked_list(c.dns_servers, mask)}")
        elif is_local:
            lines.append("DNS: not configured")

    if c.dns_domain:
        lines.append(f"DNS domain: {mask(c.dns_domain)}")
    if c.search_domains:
        lines.append(f"Search domains: {_masked_list(c.search_domains, mask)}")
    return lines


def log_configuration(configuration, is_local, logger=None, mask=str):
    """
    Emit describe() lines through a logger.

    Args:
        configuration (Configuration): Configuration to render
        is_local (bool): See describe()
        logger: Object with an info(event, **kw) method, defaults to
            this module's structlog logger
        mask (callable): See describe()
    """
    if logger is None:
        logger = structlog.get_logger(__name__)
    for line in describe(configuration, is_local, mask):
        logger.info(line, local=is_local)
