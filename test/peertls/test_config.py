import pytest

from peertls import config
from peertls import exceptions
from peertls import options
from peertls.net import tls
from peertls.test import tutils


@pytest.fixture
def opts():
    return options.Options(tls_backend="stdlib")


def test_configure(opts):
    opts.tls_outgoing = ["cert=/a.pem", "options=NO_TICKET"]
    outgoing = config.OutgoingConfig(opts)
    peer = outgoing.peer_options
    assert peer.encrypt_transport
    assert peer.backend is tls.get_backend("stdlib")
    assert peer.dump() == "cert=/a.pem options=NO_TICKET"


def test_default_is_disabled(opts):
    outgoing = config.OutgoingConfig(opts)
    assert not outgoing.peer_options.encrypt_transport
    assert outgoing.peer_options.dump() == "disable"


def test_line(opts):
    opts.update(
        tls_outgoing=["cafile=/ca.pem"],
        tls_outgoing_line='key="/a key.pem" no-npn',
    )
    outgoing = config.OutgoingConfig(opts)
    # key= comes before any cert=
    assert outgoing.peer_options.certs == []
    assert outgoing.peer_options.ca_files == ["/ca.pem"]
    assert not outgoing.peer_options.flags.tls_npn

    opts.tls_outgoing_line = 'cert=/c.pem key="/a key.pem"'
    assert outgoing.peer_options.certs[0].private_key_file == "/a key.pem"


def test_version_limits_are_folded(opts):
    opts.tls_outgoing = ["version=4"]
    peer = config.OutgoingConfig(opts).peer_options
    assert peer.ssl_version == 0
    assert peer.ssl_options == "NO_SSLv3,NO_TLSv1_1,NO_TLSv1_2"


def test_reconfigure_swaps(opts):
    opts.tls_outgoing = ["options=NO_TICKET"]
    outgoing = config.OutgoingConfig(opts)
    before = outgoing.peer_options
    ctx = outgoing.create_client_context()

    opts.tls_outgoing = ["disable"]
    after = outgoing.peer_options
    assert after is not before
    assert not after.encrypt_transport
    # objects handed out before stay intact
    assert before.dump() == "options=NO_TICKET"
    assert ctx.options & before.backend.option("NO_TICKET")

    opts.tls_backend = "none"
    assert outgoing.peer_options.backend.name == "none"
    with pytest.raises(exceptions.TlsConfigFatal):
        outgoing.create_client_context()


def test_fatal_keeps_previous(opts):
    outgoing = config.OutgoingConfig(opts)
    opts.tls_outgoing = ["cafile=/ca.pem"]
    with pytest.raises(exceptions.TlsConfigFatal):
        opts.tls_outgoing = ["cafile=/other.pem", "flags=BOGUS"]
    assert outgoing.peer_options.ca_files == ["/ca.pem"]



def test_recording_backend(monkeypatch, opts):
    backend = tutils.RecordingBackend()
    monkeypatch.setattr(tls, "get_backend", lambda name: backend)
    outgoing = config.OutgoingConfig(opts)
    outgoing.create_client_context(apply_options=False)
    assert backend.ops()[0] == "allocate_context"
