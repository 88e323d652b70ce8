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

"""Request types and the shared template-building steps used by signers."""

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, FrozenSet, List, Optional, Union

from cryptography import x509
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa

from casigner.config import DEFAULT_BACKDATE, SigningProfile
from casigner.errors import CertificateError, CSRError, ErrorReason, PolicyError
from casigner.signer.template import CertificateDraft, IdentityField, Name, SignatureAlgorithm

logger = logging.getLogger(__name__)

# path length given to a CA certificate the signer issues for itself
MAX_PATH_LEN = 2

_SERIAL_RANDOM_BITS = 63


@dataclass
class Subject:
    """Administrator-supplied subject override for a sign request.

    Attributes:
        names: override identities; only the first one is consulted
        whitelist: identity fields of the CSR that are kept; None keeps all of them
    """

    names: List[Name] = field(default_factory=list)
    whitelist: Optional[FrozenSet[IdentityField]] = None

    def name(self) -> Optional[Name]:
        if not self.names:
            return None
        return self.names[0].copy()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Subject":
        """Build from the JSON form ``{"CN": ..., "names": [...], "whitelist": {...}}``.

        A top level "CN" applies to the first override identity, if there is one.
        """
        names = [Name.from_dict(n) for n in data.get("names") or []]
        cn = data.get("CN", "")
        if cn and names:
            names[0].common_name = cn

        whitelist = None
        flags = data.get("whitelist")
        if flags is not None:
            whitelist = frozenset(IdentityField(tag) for tag, keep in flags.items() if keep)
        return cls(names=names, whitelist=whitelist)


@dataclass
class SignRequest:
    """A single request to sign a CSR.

    Attributes:
        request: PEM-encoded certificate signing request
        profile: policy profile name; empty or unknown names use the default profile
        hosts: replacement SAN entries (IP literals or DNS names); None keeps the CSR's SANs
        subject: optional subject override
        serial_seq: serial number prefix, honored only by profiles with use_serial_seq
        label: signer label; unused by the local signer
    """

    request: Union[str, bytes]
    profile: str = ""
    hosts: Optional[List[str]] = None
    subject: Optional[Subject] = None
    serial_seq: str = ""
    label: str = ""


def default_sig_algo(key) -> SignatureAlgorithm:
    """Pick the signature algorithm matching the strength of a CA key."""
    if isinstance(key, rsa.RSAPrivateKey):
        if key.key_size < 3072:
            return SignatureAlgorithm.SHA256_WITH_RSA
        elif key.key_size < 4096:
            return SignatureAlgorithm.SHA384_WITH_RSA
        return SignatureAlgorithm.SHA512_WITH_RSA
    elif isinstance(key, ec.EllipticCurvePrivateKey):
        if isinstance(key.curve, ec.SECP384R1):
            return SignatureAlgorithm.ECDSA_WITH_SHA384
        elif isinstance(key.curve, ec.SECP521R1):
            return SignatureAlgorithm.ECDSA_WITH_SHA512
        return SignatureAlgorithm.ECDSA_WITH_SHA256
    elif isinstance(key, ed25519.Ed25519PrivateKey):
        return SignatureAlgorithm.PURE_ED25519
    raise ValueError(f"unsupported key type {type(key).__name__}")


def _serial_number(serial_seq: str) -> int:
    serial = secrets.randbits(_SERIAL_RANDOM_BITS)
    if not serial_seq:
        return serial
    try:
        return int(f"{serial_seq}{serial:016X}", 16)
    except ValueError as e:
        raise CertificateError(ErrorReason.MISSING_SERIAL, f"serial sequence '{serial_seq}' is not hexadecimal") from e


def fill_template(
    template: CertificateDraft,
    default_profile: SigningProfile,
    profile: SigningProfile,
    serial_seq: str = "",
):
    """Populate validity, serial number and extensions of a draft from a profile.

    Values the profile leaves unset are taken from the default profile. The
    draft's subject and public key are not touched.

    Raises:
        PolicyError: if the profile allows no key usage at all
        CertificateError: if serial_seq is not a hexadecimal string
    """
    key_usages, ext_key_usages, _ = profile.usages()
    if not key_usages and not ext_key_usages:
        raise PolicyError(ErrorReason.NO_KEY_USAGES)

    expiry = profile.expiry or default_profile.expiry
    ocsp_url = profile.ocsp_url or default_profile.ocsp_url
    crl_url = profile.crl_url or default_profile.crl_url
    issuer_urls = profile.issuer_urls if profile.issuer_urls is not None else default_profile.issuer_urls
    backdate = profile.backdate or DEFAULT_BACKDATE

    if profile.not_before:
        not_before = profile.not_before
    else:
        now = datetime.now(timezone.utc)
        # round to the nearest minute
        rounded = now.replace(second=0, microsecond=0)
        if now - rounded >= timedelta(seconds=30):
            rounded += timedelta(minutes=1)
        not_before = rounded - backdate

    not_after = profile.not_after if profile.not_after else not_before + expiry

    template.serial_number = _serial_number(serial_seq)
    template.not_before = not_before
    template.not_after = not_after
    template.key_usage = set(key_usages)
    template.ext_key_usage = list(ext_key_usages)
    template.basic_constraints_valid = True
    template.subject_key_id = x509.SubjectKeyIdentifier.from_public_key(template.public_key).digest

    if ocsp_url:
        template.ocsp_servers = [ocsp_url]
    if crl_url:
        template.crl_distribution_points = [crl_url]
    if issuer_urls:
        template.issuing_certificate_urls = list(issuer_urls)


def parse_certificate_request(signer, csr_bytes: bytes) -> CertificateDraft:
    """Build a certificate draft from a DER-encoded CSR.

    The draft takes the CSR's subject, public key, SANs and requested basic
    constraints, and the signer's signature algorithm.

    Raises:
        CSRError: if the CSR cannot be parsed
        CertificateError: if the CSR signature does not verify
    """
    try:
        csr = x509.load_der_x509_csr(csr_bytes, default_backend())
    except ValueError as e:
        raise CSRError(ErrorReason.PARSE_FAILED, str(e)) from e

    if not csr.is_signature_valid:
        raise CertificateError(ErrorReason.VERIFY_FAILED, "CSR signature is invalid")

    template = CertificateDraft(
        public_key=csr.public_key(),
        subject=Name.from_x509(csr.subject),
        signature_algorithm=signer.sig_algo,
    )

    try:
        san = csr.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        template.dns_names = san.get_values_for_type(x509.DNSName)
        template.ip_addresses = san.get_values_for_type(x509.IPAddress)
        template.email_addresses = san.get_values_for_type(x509.RFC822Name)
    except x509.ExtensionNotFound:
        pass

    try:
        constraints = csr.extensions.get_extension_for_class(x509.BasicConstraints).value
        template.basic_constraints_valid = True
        template.is_ca = constraints.ca
        template.max_path_len = constraints.path_length
    except x509.ExtensionNotFound:
        pass

    return template
