# Copyright (c) 2025, NVIDIA CORPORATION.  All rights reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Shared fixtures: CA keys, CA certificates and CSR builders."""

from datetime import datetime, timedelta, timezone

import pytest
from cryptography import x509
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import NameOID


def generate_rsa_key(key_size=2048):
    return rsa.generate_private_key(public_exponent=65537, key_size=key_size, backend=default_backend())


def generate_root_ca(private_key, cn="TestRootCA", org="TestOrg"):
    """Generate a self-signed CA certificate for private_key."""
    subject = issuer = x509.Name(
        [
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, org),
            x509.NameAttribute(NameOID.COMMON_NAME, cn),
        ]
    )
    return (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(datetime.now(timezone.utc))
        .not_valid_after(datetime.now(timezone.utc) + timedelta(days=365))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(private_key.public_key()), critical=False)
        .sign(private_key, hashes.SHA256(), default_backend())
    )


def create_csr(
    private_key=None,
    cn="test.example.com",
    org=None,
    country=None,
    org_unit=None,
    dns_names=None,
    ip_addresses=None,
    ca=None,
    path_length=None,
):
    """Create a PEM-encoded CSR for testing.

    Args:
        ca: None to omit the BasicConstraints extension, otherwise the requested CA flag
    """
    if private_key is None:
        private_key = generate_rsa_key()

    attrs = []
    if country:
        attrs.append(x509.NameAttribute(NameOID.COUNTRY_NAME, country))
    if org:
        attrs.append(x509.NameAttribute(NameOID.ORGANIZATION_NAME, org))
    if org_unit:
        attrs.append(x509.NameAttribute(NameOID.ORGANIZATIONAL_UNIT_NAME, org_unit))
    if cn:
        attrs.append(x509.NameAttribute(NameOID.COMMON_NAME, cn))

    builder = x509.CertificateSigningRequestBuilder().subject_name(x509.Name(attrs))

    sans = [x509.DNSName(d) for d in dns_names or []]
    sans.extend(x509.IPAddress(ip) for ip in ip_addresses or [])
    if sans:
        builder = builder.add_extension(x509.SubjectAlternativeName(sans), critical=False)

    if ca is not None:
        builder = builder.add_extension(
            x509.BasicConstraints(ca=ca, path_length=path_length if ca else None), critical=True
        )

    csr = builder.sign(private_key, hashes.SHA256(), default_backend())
    return csr.public_bytes(serialization.Encoding.PEM)


@pytest.fixture(scope="session")
def ca_key():
    return generate_rsa_key()


@pytest.fixture(scope="session")
def ca_cert(ca_key):
    return generate_root_ca(ca_key)


@pytest.fixture(scope="session")
def ec_ca_key():
    return ec.generate_private_key(ec.SECP384R1(), default_backend())


@pytest.fixture
def make_csr():
    """Factory fixture wrapping create_csr."""
    return create_csr


@pytest.fixture
def make_key():
    """Factory fixture wrapping generate_rsa_key."""
    return generate_rsa_key


@pytest.fixture
def make_root_ca():
    """Factory fixture wrapping generate_root_ca."""
    return generate_root_ca
