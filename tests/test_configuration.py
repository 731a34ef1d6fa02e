"""Tests for configuration builder, snapshot and derived accessors."""
import itertools
import json
import re

import pytest
from pydantic import ValidationError
from structlog.testing import capture_logs

from tunnel.configuration import (
    Configuration, ConfigurationBuilder, Fallback, SettingOrigin,
    load_configuration, migrate_legacy_fields
)
from tunnel.errors import CredentialsError, ParameterError, PRNGInitializationError
from tunnel.models import (
    CryptoContainer, Credentials, Endpoint, IPv4Route, Proxy, StaticKey, TLSWrap
)
from tunnel.options import (
    Cipher, CompressionAlgorithm, CompressionFraming, Digest, DNSProtocol,
    PullMask, RoutingPolicy, TLSWrapStrategy
)

CA_PEM = "-----BEGIN CERTIFICATE-----\nMIIBCA\n-----END CERTIFICATE-----\n"

REMOTES = [
    'one.example.com:UDP:1194',
    'two.example.com:TCP:443',
    'three.example.com:UDP:1195',
]


def full_builder():
    """Builder with most fields set, fallback-bearing ones included."""
    builder = ConfigurationBuilder()
    builder.cipher = Cipher.AES256GCM
    builder.data_ciphers = [Cipher.AES256GCM, Cipher.AES128GCM]
    builder.digest = Digest.SHA256
    builder.compression_framing = CompressionFraming.COMPRESS_V2
    builder.compression_algorithm = CompressionAlgorithm.LZO
    builder.ca = CryptoContainer(pem=CA_PEM)
    builder.tls_wrap = TLSWrap(strategy=TLSWrapStrategy.AUTH, key=StaticKey(data=bytes(256), direction=1))
    builder.tls_security_level = 0
    builder.keep_alive_interval = 10.0
    builder.renegotiates_after = 3600.0
    builder.remotes = REMOTES
    builder.checks_eku = True
    builder.checks_san_host = True
    builder.san_host = 'vpn.example.com'
    builder.mtu = 1400
    builder.auth_user_pass = True
    builder.peer_id = 7
    builder.routes4 = [IPv4Route(destination='10.0.0.0', mask='255.0.0.0', gateway='10.8.0.1')]
    builder.is_dns_enabled = True
    builder.dns_protocol = DNSProtocol.PLAIN
    builder.dns_servers = ['1.1.1.1', '8.8.8.8']
    builder.search_domains = ['corp.example.com']
    builder.http_proxy = Proxy(address='proxy.local', port=8080)
    builder.proxy_bypass_domains = ['internal.example.com']
    builder.routing_policies = [RoutingPolicy.IPV4, RoutingPolicy.BLOCK_LOCAL]
    builder.no_pull_mask = [PullMask.PROXY]
    return builder


def failing_on(call_number):
    """Entropy source that fails on the given call (1-based)."""
    calls = []

    def source(length):
        calls.append(length)
        if len(calls) == call_number:
            raise PRNGInitializationError("entropy unavailable")
        return b'\xab' * length

    return source


# Builder

def test_empty_builder_has_no_values():
    builder = ConfigurationBuilder()

    assert all(value is None for value in builder.field_values().values())


def test_builder_with_fallbacks_seeds_four_fields():
    builder = ConfigurationBuilder(with_fallbacks=True)

    assert builder.cipher == Fallback.CIPHER
    assert builder.digest == Fallback.DIGEST
    assert builder.compression_framing == Fallback.COMPRESSION_FRAMING
    assert builder.compression_algorithm == Fallback.COMPRESSION_ALGORITHM
    others = {k: v for k, v in builder.field_values().items()
              if k not in ('cipher', 'digest', 'compression_framing', 'compression_algorithm')}
    assert all(value is None for value in others.values())


def test_builder_assignment_is_validated():
    """Lists become tuples, strings are parsed, bad values rejected."""
    builder = ConfigurationBuilder()
    builder.remotes = REMOTES
    builder.cipher = 'AES-256-CBC'

    assert isinstance(builder.remotes, tuple)
    assert builder.remotes[0] == Endpoint.parse(REMOTES[0])
    assert builder.cipher is Cipher.AES256CBC

    with pytest.raises(ValidationError):
        builder.cipher = 'aes-256-cbc'  # Case matters
    with pytest.raises(ValidationError):
        builder.peer_id = -1


def test_build_copies_every_field():
    builder = full_builder()

    configuration = builder.build()

    assert isinstance(configuration, Configuration)
    assert configuration.field_values() == builder.field_values()


def test_build_is_isolated_from_later_builder_changes():
    builder = full_builder()
    configuration = builder.build()

    builder.cipher = Cipher.AES128CBC
    builder.remotes = ['other.example.com:UDP:1194']

    assert configuration.cipher == Cipher.AES256GCM
    assert len(configuration.remotes) == 3


def test_configuration_is_immutable():
    configuration = full_builder().build()

    with pytest.raises(ValidationError):
        configuration.cipher = Cipher.AES128CBC


# Round trip

def test_roundtrip_without_fallbacks_is_identity():
    """build() then builder() should give back every field unchanged."""
    for builder in (ConfigurationBuilder(), full_builder()):
        roundtrip = builder.build().builder(with_fallbacks=False)
        assert roundtrip.field_values() == builder.field_values()


def test_roundtrip_with_fallbacks_fills_unset_fields():
    builder = ConfigurationBuilder()
    builder.mtu = 1300

    roundtrip = builder.build().builder(with_fallbacks=True)

    assert roundtrip.cipher == Cipher.AES128CBC
    assert roundtrip.digest == Digest.SHA1
    assert roundtrip.compression_framing == CompressionFraming.DISABLED
    assert roundtrip.compression_algorithm == CompressionAlgorithm.DISABLED
    assert roundtrip.mtu == 1300
    changed = {k for k, v in roundtrip.field_values().items() if v != builder.field_values()[k]}
    assert changed == {'cipher', 'digest', 'compression_framing', 'compression_algorithm'}


def test_roundtrip_with_fallbacks_keeps_explicit_values():
    builder = full_builder()

    roundtrip = builder.build().builder(with_fallbacks=True)

    assert roundtrip.field_values() == builder.field_values()


# Fallback accessors

def test_fallback_cipher():
    """Unset cipher falls back to AES-128-CBC; explicit value wins."""
    assert ConfigurationBuilder().build().fallback_cipher == Cipher.AES128CBC

    builder = ConfigurationBuilder()
    builder.cipher = Cipher.AES256GCM
    assert builder.build().fallback_cipher == Cipher.AES256GCM


def test_fallback_accessors_on_empty_configuration():
    configuration = ConfigurationBuilder().build()

    assert configuration.fallback_digest == Digest.SHA1
    assert configuration.fallback_compression_framing == CompressionFraming.DISABLED
    assert configuration.fallback_compression_algorithm == CompressionAlgorithm.DISABLED
    # Stored fields stay unset
    assert configuration.cipher is None
    assert configuration.digest is None


def test_fallback_accessors_return_explicit_values():
    configuration = full_builder().build()

    assert configuration.fallback_digest == Digest.SHA256
    assert configuration.fallback_compression_framing == CompressionFraming.COMPRESS_V2
    assert configuration.fallback_compression_algorithm == CompressionAlgorithm.LZO


def test_origin_distinguishes_explicit_defaulted_and_unset():
    builder = ConfigurationBuilder()
    builder.digest = Digest.SHA1  # Explicitly equal to the fallback
    configuration = builder.build()

    assert configuration.origin('digest') == SettingOrigin.EXPLICIT
    assert configuration.origin('cipher') == SettingOrigin.DEFAULTED
    assert configuration.origin('mtu') == SettingOrigin.UNSET
    with pytest.raises(ParameterError):
        configuration.origin('nonexistent')


# Pull mask

def test_pull_mask_without_exclusions_is_everything():
    assert ConfigurationBuilder().build().pull_mask == frozenset(PullMask)


def test_pull_mask_is_set_difference_for_every_subset():
    everything = frozenset(PullMask)
    for size in range(len(everything) + 1):
        for excluded in itertools.combinations(PullMask, size):
            builder = ConfigurationBuilder()
            builder.no_pull_mask = list(excluded)
            expected = everything - frozenset(excluded)

            pull_mask = builder.build().pull_mask

            if expected:
                assert pull_mask == expected
            else:
                assert pull_mask is None


def test_pull_mask_aliasing_when_everything_excluded():
    """
    Excluding every category yields None, the "no restriction" value.

    This aliasing is inherited behavior: None can't tell "pull nothing"
    from "no restriction". Consumers must check no_pull_mask to decide.

    It is not symmetric with an empty exclusion list: excluding nothing
    yields the full frozenset, not None. Only "exclude everything" maps
    to None, so "exclude everything" and "exclude nothing" do not compare
    equal here.
    """
    builder = ConfigurationBuilder()
    builder.no_pull_mask = list(PullMask)

    assert builder.build().pull_mask is None


# Processed remotes

def test_processed_remotes_none_when_not_configured():
    assert ConfigurationBuilder().build().processed_remotes() is None


def test_processed_remotes_without_randomization_is_unchanged():
    builder = ConfigurationBuilder()
    builder.remotes = REMOTES
    configuration = builder.build()

    assert configuration.processed_remotes() == configuration.remotes


def test_processed_remotes_randomize_endpoint_permutes():
    """Output is always a permutation and not always the identity."""
    builder = ConfigurationBuilder()
    builder.remotes = REMOTES
    builder.randomize_endpoint = True
    configuration = builder.build()

    orders = set()
    for _ in range(200):
        processed = configuration.processed_remotes()
        assert sorted(map(str, processed)) == sorted(REMOTES)
        orders.add(tuple(map(str, processed)))

    assert len(orders) > 1
    # Stored order is untouched
    assert [str(r) for r in configuration.remotes] == REMOTES


def test_processed_remotes_randomize_hostnames():
    builder = ConfigurationBuilder()
    builder.remotes = REMOTES
    builder.randomize_hostnames = True

    processed = builder.build().processed_remotes()

    assert len(processed) == 3
    for remote, original in zip(processed, REMOTES):
        assert re.fullmatch(r'[0-9a-f]{12}\.' + re.escape(original.split(':')[0]), remote.address)


def test_processed_remotes_drops_endpoint_on_prefix_failure():
    """A failed prefix drops only that endpoint and logs a warning."""
    builder = ConfigurationBuilder()
    builder.remotes = REMOTES
    builder.randomize_hostnames = True
    configuration = builder.build()

    with capture_logs() as logs:
        processed = configuration.processed_remotes(random_bytes=failing_on(2))

    assert [r.address for r in processed] == [
        'abababababab.one.example.com',
        'abababababab.three.example.com',
    ]
    assert [r.port for r in processed] == [1194, 1195]
    warnings = [log for log in logs if log['log_level'] == 'warning']
    assert len(warnings) == 1
    assert warnings[0]['endpoint'] == 'two.example.com:TCP:443'


def test_processed_remotes_empty_when_every_prefix_fails():
    """Empty tuple, distinct from None (not configured)."""
    builder = ConfigurationBuilder()
    builder.remotes = REMOTES
    builder.randomize_hostnames = True

    def broken(length):
        raise PRNGInitializationError("entropy unavailable")

    processed = builder.build().processed_remotes(random_bytes=broken)

    assert processed == ()
    assert processed is not None


# Credentials

def test_require_credentials():
    builder = ConfigurationBuilder()
    builder.auth_user_pass = True
    configuration = builder.build()
    credentials = Credentials(username='alice', password='secret')

    assert configuration.require_credentials(credentials) is credentials
    with pytest.raises(CredentialsError):
        configuration.require_credentials(None)
    with pytest.raises(CredentialsError):
        configuration.require_credentials(Credentials(username='', password='secret'))

    assert ConfigurationBuilder().build().require_credentials(None) is None


# Document

def test_document_omits_unset_fields():
    assert ConfigurationBuilder().build().to_document() == {}


def test_document_shape():
    document = full_builder().build().to_document()

    assert document['cipher'] == 'AES-256-GCM'
    assert document['dataCiphers'] == ['AES-256-GCM', 'AES-128-GCM']
    assert document['digest'] == 'SHA256'
    assert document['compressionFraming'] == 3
    assert document['checksEKU'] is True
    assert document['checksSANHost'] is True
    assert document['isDNSEnabled'] is True
    assert document['remotes'] == REMOTES
    assert document['ca'] == CA_PEM
    assert document['routingPolicies'] == ['IPv4', 'blockLocal']
    assert document['noPullMask'] == ['proxy']
    assert document['httpProxy'] == {'address': 'proxy.local', 'port': 8080}
    assert 'clientKey' not in document


def test_document_roundtrip():
    configuration = full_builder().build()

    from_document = Configuration.from_document(configuration.to_document())
    from_json = Configuration.from_json(configuration.to_json())

    assert from_document.field_values() == configuration.field_values()
    assert from_json.field_values() == configuration.field_values()


def test_from_document_rejects_unknown_key():
    with pytest.raises(ParameterError) as exc:
        Configuration.from_document({'cipher': 'AES-128-CBC', 'bogus': 1})
    assert exc.value.name == 'bogus'


def test_from_document_rejects_bad_value():
    with pytest.raises(ParameterError) as exc:
        Configuration.from_document({'digest': 'sha1'})
    assert exc.value.name == 'digest'


def test_from_json_rejects_invalid_json():
    with pytest.raises(ParameterError) as exc:
        Configuration.from_json('{not json')
    assert exc.value.name == 'document'


def test_migrate_legacy_search_domain():
    document = {'searchDomain': 'corp.example.com', 'mtu': 1400}

    migrated = migrate_legacy_fields(document)

    assert migrated == {'searchDomains': ['corp.example.com'], 'mtu': 1400}
    # Input untouched
    assert 'searchDomain' in document


def test_migrate_keeps_existing_search_domains():
    migrated = migrate_legacy_fields({'searchDomain': 'old.example.com', 'searchDomains': ['new.example.com']})

    assert migrated == {'searchDomains': ['new.example.com']}


def test_from_document_applies_migration():
    configuration = Configuration.from_document({'searchDomain': 'corp.example.com'})

    assert configuration.search_domains == ('corp.example.com',)


def test_load_configuration(tmp_path):
    path = tmp_path / 'tunnel.json'
    path.write_text(json.dumps({'remotes': REMOTES, 'randomizeEndpoint': True}))

    configuration = load_configuration(path)

    assert configuration.randomize_endpoint is True
    assert [str(r) for r in configuration.remotes] == REMOTES


def test_load_configuration_missing_file(tmp_path):
    with pytest.raises(ParameterError) as exc:
        load_configuration(tmp_path / 'missing.json')
    assert exc.value.name == 'path'
