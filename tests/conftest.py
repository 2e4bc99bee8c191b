import pytest

from vectors import PinnedCertificateProvider, Signer, make_cose, sample_claims, to_qr


@pytest.fixture(scope="session")
def ec_signer():
    return Signer.ec()


@pytest.fixture(scope="session")
def rsa_signer():
    return Signer.rsa()


@pytest.fixture(scope="session")
def good_cose(ec_signer):
    return make_cose(sample_claims(), ec_signer)


@pytest.fixture(scope="session")
def good_qr(good_cose):
    return to_qr(good_cose)


@pytest.fixture
def pinned(ec_signer, rsa_signer):
    return PinnedCertificateProvider(ec_signer, rsa_signer)
