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

"""Certificate templates.

A certificate under construction lives in a mutable CertificateDraft while
the signing stages (CSR parsing, host override, subject merge, template
filling, CA constraints) run over it. Only CertificateDraft.freeze()
produces a CertificateTemplate, and only a CertificateTemplate can be
handed to create_certificate().
"""

import ipaddress
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Set, Tuple, Union

from cryptography import x509
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa
from cryptography.x509.oid import AuthorityInformationAccessOID, NameOID

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


class SignatureAlgorithm(str, Enum):
    """Signature algorithms a CA key can sign with."""

    SHA1_WITH_RSA = "SHA1WithRSA"
    SHA256_WITH_RSA = "SHA256WithRSA"
    SHA384_WITH_RSA = "SHA384WithRSA"
    SHA512_WITH_RSA = "SHA512WithRSA"
    ECDSA_WITH_SHA1 = "ECDSAWithSHA1"
    ECDSA_WITH_SHA256 = "ECDSAWithSHA256"
    ECDSA_WITH_SHA384 = "ECDSAWithSHA384"
    ECDSA_WITH_SHA512 = "ECDSAWithSHA512"
    PURE_ED25519 = "PureEd25519"

    def hash_algorithm(self) -> Optional[hashes.HashAlgorithm]:
        """Digest used with this algorithm; None for algorithms that hash internally."""
        if self == SignatureAlgorithm.PURE_ED25519:
            return None
        if self.value.startswith("SHA1") or self.value.endswith("SHA1"):
            return hashes.SHA1()
        if "256" in self.value:
            return hashes.SHA256()
        if "384" in self.value:
            return hashes.SHA384()
        return hashes.SHA512()

    def check_key(self, key):
        """Raise ValueError if key cannot produce this kind of signature."""
        if self.value.endswith("WithRSA"):
            expected = rsa.RSAPrivateKey
        elif self.value.startswith("ECDSA"):
            expected = ec.EllipticCurvePrivateKey
        else:
            expected = ed25519.Ed25519PrivateKey
        if not isinstance(key, expected):
            raise ValueError(f"{type(key).__name__} cannot sign with {self.value}")


class IdentityField(str, Enum):
    """Identity attributes a Name carries, tagged by their short names."""

    CN = "CN"
    C = "C"
    ST = "ST"
    L = "L"
    O = "O"  # noqa: E741
    OU = "OU"


_FIELD_ATTRS = {
    IdentityField.CN: "common_name",
    IdentityField.C: "country",
    IdentityField.ST: "province",
    IdentityField.L: "locality",
    IdentityField.O: "organization",
    IdentityField.OU: "organizational_unit",
}

# RDN order used when encoding, matching what most CAs emit
_ENCODE_ORDER = [
    (IdentityField.C, NameOID.COUNTRY_NAME),
    (IdentityField.ST, NameOID.STATE_OR_PROVINCE_NAME),
    (IdentityField.L, NameOID.LOCALITY_NAME),
    (IdentityField.O, NameOID.ORGANIZATION_NAME),
    (IdentityField.OU, NameOID.ORGANIZATIONAL_UNIT_NAME),
]

_OID_FIELDS = {oid: f for f, oid in _ENCODE_ORDER}


@dataclass
class Name:
    """Subject identity: a common name plus multi-valued attributes."""

    common_name: str = ""
    country: List[str] = field(default_factory=list)
    province: List[str] = field(default_factory=list)
    locality: List[str] = field(default_factory=list)
    organization: List[str] = field(default_factory=list)
    organizational_unit: List[str] = field(default_factory=list)

    def get(self, tag: IdentityField) -> Union[str, List[str]]:
        return getattr(self, _FIELD_ATTRS[tag])

    def set(self, tag: IdentityField, value: Union[str, List[str]]):
        if tag == IdentityField.CN:
            setattr(self, _FIELD_ATTRS[tag], value)
        else:
            setattr(self, _FIELD_ATTRS[tag], list(value))

    def blank(self, tag: IdentityField):
        self.set(tag, "" if tag == IdentityField.CN else [])

    def copy(self) -> "Name":
        result = Name(common_name=self.common_name)
        for tag in IdentityField:
            if tag != IdentityField.CN:
                result.set(tag, self.get(tag))
        return result

    @classmethod
    def from_dict(cls, data: Dict) -> "Name":
        name = cls(common_name=data.get("CN", ""))
        for tag in IdentityField:
            if tag == IdentityField.CN:
                continue
            value = data.get(tag.value)
            if value:
                name.set(tag, [value] if isinstance(value, str) else value)
        return name

    @classmethod
    def from_x509(cls, x509_name: x509.Name) -> "Name":
        name = cls()
        for attr in x509_name:
            if attr.oid == NameOID.COMMON_NAME:
                name.common_name = attr.value
            elif attr.oid in _OID_FIELDS:
                name.get(_OID_FIELDS[attr.oid]).append(attr.value)
        return name

    def to_x509(self) -> x509.Name:
        attrs = []
        for tag, oid in _ENCODE_ORDER:
            for value in self.get(tag):
                attrs.append(x509.NameAttribute(oid, value))
        if self.common_name:
            attrs.append(x509.NameAttribute(NameOID.COMMON_NAME, self.common_name))
        return x509.Name(attrs)


@dataclass
class CertificateDraft:
    """Mutable certificate under construction."""

    public_key: object
    subject: Name = field(default_factory=Name)
    signature_algorithm: SignatureAlgorithm = SignatureAlgorithm.SHA256_WITH_RSA
    serial_number: Optional[int] = None
    not_before: Optional[datetime] = None
    not_after: Optional[datetime] = None
    key_usage: Set[str] = field(default_factory=set)
    ext_key_usage: List[x509.ObjectIdentifier] = field(default_factory=list)
    basic_constraints_valid: bool = False
    is_ca: bool = False
    max_path_len: Optional[int] = None
    dns_names: List[str] = field(default_factory=list)
    ip_addresses: List[IPAddress] = field(default_factory=list)
    email_addresses: List[str] = field(default_factory=list)
    subject_key_id: Optional[bytes] = None
    ocsp_servers: List[str] = field(default_factory=list)
    issuing_certificate_urls: List[str] = field(default_factory=list)
    crl_distribution_points: List[str] = field(default_factory=list)

    def freeze(self) -> "CertificateTemplate":
        """Finalize the draft.

        Raises:
            ValueError: if the draft has not been filled (no serial or validity)
        """
        if self.serial_number is None or self.not_before is None or self.not_after is None:
            raise ValueError("certificate draft has not been filled")
        return CertificateTemplate(
            public_key=self.public_key,
            subject=self.subject.copy(),
            signature_algorithm=self.signature_algorithm,
            serial_number=self.serial_number,
            not_before=self.not_before,
            not_after=self.not_after,
            key_usage=frozenset(self.key_usage),
            ext_key_usage=tuple(self.ext_key_usage),
            basic_constraints_valid=self.basic_constraints_valid,
            is_ca=self.is_ca,
            max_path_len=self.max_path_len,
            dns_names=tuple(self.dns_names),
            ip_addresses=tuple(self.ip_addresses),
            email_addresses=tuple(self.email_addresses),
            subject_key_id=self.subject_key_id,
            ocsp_servers=tuple(self.ocsp_servers),
            issuing_certificate_urls=tuple(self.issuing_certificate_urls),
            crl_distribution_points=tuple(self.crl_distribution_points),
        )


@dataclass(frozen=True)
class CertificateTemplate:
    """Finalized certificate contents, ready to be signed."""

    public_key: object
    subject: Name
    signature_algorithm: SignatureAlgorithm
    serial_number: int
    not_before: datetime
    not_after: datetime
    key_usage: FrozenSet[str]
    ext_key_usage: Tuple[x509.ObjectIdentifier, ...]
    basic_constraints_valid: bool
    is_ca: bool
    max_path_len: Optional[int]
    dns_names: Tuple[str, ...]
    ip_addresses: Tuple[IPAddress, ...]
    email_addresses: Tuple[str, ...]
    subject_key_id: Optional[bytes]
    ocsp_servers: Tuple[str, ...]
    issuing_certificate_urls: Tuple[str, ...]
    crl_distribution_points: Tuple[str, ...]


_KEY_USAGE_FLAGS = [
    "digital_signature",
    "content_commitment",
    "key_encipherment",
    "data_encipherment",
    "key_agreement",
    "key_cert_sign",
    "crl_sign",
    "encipher_only",
    "decipher_only",
]


def _public_key_bytes(key) -> bytes:
    return key.public_bytes(serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo)


def _key_usage(usages: FrozenSet[str]) -> x509.KeyUsage:
    flags = {name: name in usages for name in _KEY_USAGE_FLAGS}
    if not flags["key_agreement"]:
        flags["encipher_only"] = False
        flags["decipher_only"] = False
    return x509.KeyUsage(**flags)


def _authority_key_id(issuer: x509.Certificate) -> x509.AuthorityKeyIdentifier:
    try:
        ski = issuer.extensions.get_extension_for_class(x509.SubjectKeyIdentifier).value
        return x509.AuthorityKeyIdentifier.from_issuer_subject_key_identifier(ski)
    except x509.ExtensionNotFound:
        return x509.AuthorityKeyIdentifier.from_issuer_public_key(issuer.public_key())


def create_certificate(
    template: CertificateTemplate,
    issuer: Union[x509.Certificate, CertificateTemplate],
    public_key,
    signing_key,
) -> x509.Certificate:
    """Sign template with signing_key and return the issued certificate.

    Args:
        template: finalized certificate contents
        issuer: issuing CA certificate, or the template itself for a self-signed certificate
        public_key: subject public key to certify
        signing_key: private key of the issuer

    Raises:
        ValueError: if the signing key does not belong to the issuer or cannot
            produce the template's signature algorithm
    """
    self_signed = issuer is template
    issuer_key = template.public_key if self_signed else issuer.public_key()
    if _public_key_bytes(signing_key.public_key()) != _public_key_bytes(issuer_key):
        raise ValueError("signing key does not match the issuer public key")
    template.signature_algorithm.check_key(signing_key)

    issuer_name = template.subject.to_x509() if self_signed else issuer.subject
    builder = (
        x509.CertificateBuilder()
        .subject_name(template.subject.to_x509())
        .issuer_name(issuer_name)
        .public_key(public_key)
        .serial_number(template.serial_number)
        .not_valid_before(template.not_before)
        .not_valid_after(template.not_after)
    )

    if template.basic_constraints_valid:
        path_length = template.max_path_len if template.is_ca else None
        constraints = x509.BasicConstraints(ca=template.is_ca, path_length=path_length)
        builder = builder.add_extension(constraints, critical=True)

    if template.key_usage:
        builder = builder.add_extension(_key_usage(template.key_usage), critical=True)

    if template.ext_key_usage:
        builder = builder.add_extension(x509.ExtendedKeyUsage(list(template.ext_key_usage)), critical=False)

    sans = [x509.DNSName(h) for h in template.dns_names]
    sans.extend(x509.IPAddress(ip) for ip in template.ip_addresses)
    sans.extend(x509.RFC822Name(e) for e in template.email_addresses)
    if sans:
        builder = builder.add_extension(x509.SubjectAlternativeName(sans), critical=False)

    if template.subject_key_id:
        builder = builder.add_extension(x509.SubjectKeyIdentifier(template.subject_key_id), critical=False)

    if not self_signed:
        builder = builder.add_extension(_authority_key_id(issuer), critical=False)

    if template.crl_distribution_points:
        points = [
            x509.DistributionPoint(
                full_name=[x509.UniformResourceIdentifier(url)], relative_name=None, reasons=None, crl_issuer=None
            )
            for url in template.crl_distribution_points
        ]
        builder = builder.add_extension(x509.CRLDistributionPoints(points), critical=False)

    access = [
        x509.AccessDescription(AuthorityInformationAccessOID.OCSP, x509.UniformResourceIdentifier(url))
        for url in template.ocsp_servers
    ]
    access.extend(
        x509.AccessDescription(AuthorityInformationAccessOID.CA_ISSUERS, x509.UniformResourceIdentifier(url))
        for url in template.issuing_certificate_urls
    )
    if access:
        builder = builder.add_extension(x509.AuthorityInformationAccess(access), critical=False)

    cert = builder.sign(signing_key, template.signature_algorithm.hash_algorithm(), default_backend())
    return cert
