from __future__ import annotations

import pytest

from peertls.test import tutils


@pytest.fixture(scope="session")
def tca():
    return tutils.tca()


@pytest.fixture()
def tbackend():
    return tutils.RecordingBackend()


@pytest.fixture()
def cafile(tmp_path, tca):
    _, cacert = tca
    return tutils.write_pem(tmp_path / "ca.pem", cacert)


@pytest.fixture()
def crl_file(tmp_path, tca):
    """A file with three CRLs of the test CA, revoking serials 1, 1-2 and 1-3."""
    key, cacert = tca
    return tutils.write_pem(
        tmp_path / "revoked.crl",
        tutils.tcrl(key, cacert, [1]),
        tutils.tcrl(key, cacert, [1, 2]),
        tutils.tcrl(key, cacert, [1, 2, 3]),
    )


@pytest.fixture()
def client_cert(tmp_path, tca):
    """A certificate and key file for the test CA's key, as a client would use them."""
    key, cacert = tca
    cert = tutils.write_pem(tmp_path / "client.pem", cacert)
    keyfile = tutils.write_pem(tmp_path / "client.key", key)
    return cert, keyfile
