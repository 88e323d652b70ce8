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

"""Local signer - signs certificates with an in-process CA key.

The signer keeps the CA certificate, the CA key and the signing policy.
A signer created without a CA certificate issues its own root on the
first request, which must ask for a CA certificate; every later request
is issued under that root.
"""

import ipaddress
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Union

from cryptography import x509
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import serialization

from casigner.config import Signing, SigningProfile
from casigner.errors import CertificateError, ErrorReason, PolicyError, PrivateKeyError
from casigner.helpers import (
    PEM_CERTIFICATE_REQUEST,
    decode_pem,
    parse_certificate_pem,
    parse_private_key_pem,
    read_file,
)
from casigner.signer.signer import (
    MAX_PATH_LEN,
    SignRequest,
    Subject,
    default_sig_algo,
    fill_template,
    parse_certificate_request,
)
from casigner.signer.template import (
    CertificateDraft,
    CertificateTemplate,
    IdentityField,
    Name,
    SignatureAlgorithm,
    create_certificate,
)

logger = logging.getLogger(__name__)


class Uninitialized:
    """CA state of a signer that has not issued its root certificate yet."""

    def __repr__(self):
        return "Uninitialized()"


@dataclass(frozen=True)
class Active:
    """CA state of a signer holding its issuing certificate."""

    certificate: x509.Certificate


CAState = Union[Uninitialized, Active]


class Issuance(str, Enum):
    """Kind of certificate a sign operation produces."""

    ROOT = "root"
    INTERMEDIATE = "intermediate"
    LEAF = "leaf"


def override_hosts(template: CertificateDraft, hosts: Optional[List[str]]):
    """Replace the SANs of a draft with hosts, if hosts is not None.

    IP literals become IP address SANs, everything else a DNS name.
    """
    if hosts is None:
        return

    template.ip_addresses = []
    template.dns_names = []
    for host in hosts:
        try:
            template.ip_addresses.append(ipaddress.ip_address(host))
        except ValueError:
            template.dns_names.append(host)


def _whitelist_request(s: Subject, name: Name) -> Name:
    if s.whitelist is None:
        return name
    for tag in IdentityField:
        if tag not in s.whitelist:
            name.blank(tag)
    return name


def populate_subject_from_csr(s: Optional[Subject], req: Name) -> Name:
    """Merge the CSR subject with an administrator override.

    CSR fields missing from the override whitelist are dropped first. The
    first override identity then wins for every field it sets; fields it
    leaves empty are taken from the (whitelisted) CSR subject.
    """
    if s is None:
        return req

    req = _whitelist_request(s, req.copy())
    name = s.name()
    if name is None:
        return req

    for tag in IdentityField:
        if not name.get(tag):
            name.set(tag, req.get(tag))
    return name


def apply_ca_constraints(state: CAState, template: CertificateDraft) -> Issuance:
    """Apply the CA hierarchy rules for the signer state to a draft.

    Raises:
        PolicyError: if the signer has no CA certificate and the request is not for a CA
    """
    if isinstance(state, Uninitialized):
        if not template.is_ca:
            raise PolicyError(ErrorReason.INVALID_REQUEST, "the first certificate issued must be a CA certificate")
        template.dns_names = []
        template.max_path_len = MAX_PATH_LEN
        return Issuance.ROOT

    if template.is_ca:
        template.max_path_len = 1
        template.dns_names = []
        return Issuance.INTERMEDIATE

    return Issuance.LEAF


class LocalSigner:
    """Signs certificate requests with a CA key held in process.

    Sign operations, policy access and CA certificate access are serialized
    by one lock, so a root bootstrap is never observed half done.
    """

    def __init__(
        self,
        priv,
        cert: Optional[x509.Certificate],
        sig_algo: SignatureAlgorithm,
        policy: Optional[Signing] = None,
    ):
        """Create a signer.

        Args:
            priv: CA private key
            cert: CA certificate; None to let the first request create a self-signed root
            sig_algo: signature algorithm used with priv
            policy: signing policy; defaults to no profiles and the built-in default profile

        Raises:
            PolicyError: if the policy is invalid
        """
        self.logger = logging.getLogger(self.__class__.__name__)

        if policy is None:
            policy = Signing()

        if not policy.valid():
            raise PolicyError(ErrorReason.INVALID_POLICY)

        self._priv = priv
        self._ca: CAState = Active(cert) if cert is not None else Uninitialized()
        self._sig_algo = sig_algo
        self._policy = policy
        self._lock = threading.Lock()

    @classmethod
    def from_file(cls, ca_file: str, ca_key_file: str, policy: Optional[Signing] = None) -> "LocalSigner":
        """Create a signer from PEM-encoded CA certificate and key files."""
        logger.debug(f"Loading CA: {ca_file}")
        ca = read_file(ca_file)
        logger.debug(f"Loading CA key: {ca_key_file}")
        ca_key = read_file(ca_key_file)

        parsed_ca = parse_certificate_pem(ca)
        try:
            priv = parse_private_key_pem(ca_key)
        except PrivateKeyError as e:
            logger.debug(f"Malformed private key {e}")
            raise

        return cls(priv, parsed_ca, default_sig_algo(priv), policy)

    @property
    def sig_algo(self) -> SignatureAlgorithm:
        return self._sig_algo

    @property
    def policy(self) -> Signing:
        with self._lock:
            return self._policy

    def set_policy(self, policy: Signing):
        """Replace the signing policy.

        Raises:
            PolicyError: if the policy is invalid; the current policy stays in place
        """
        if policy is None or not policy.valid():
            self.logger.warning("rejected invalid signing policy")
            raise PolicyError(ErrorReason.INVALID_POLICY)
        with self._lock:
            self._policy = policy

    def certificate(self, label: str = "", profile: str = "") -> Optional[x509.Certificate]:
        """Return the CA certificate, or None before the root is bootstrapped."""
        with self._lock:
            state = self._ca
        if isinstance(state, Active):
            return state.certificate
        return None

    def sign(self, req: SignRequest) -> bytes:
        """Sign the CSR in req under the requested profile.

        Returns:
            the PEM-encoded certificate

        Raises:
            CertificateError: if the request is not a PEM CSR or signing fails
            CSRError: if the CSR cannot be parsed
            PolicyError: if the request violates the signing policy
        """
        with self._lock:
            profile = self._policy.profile(req.profile)
            if not req.profile or req.profile not in self._policy.profiles:
                self.logger.debug(f"profile '{req.profile}' not found, using default profile")

            serial_seq = req.serial_seq if profile.use_serial_seq else ""

            block = decode_pem(req.request)
            if block is None:
                raise CertificateError(ErrorReason.DECODE_FAILED)

            if block.type != PEM_CERTIFICATE_REQUEST:
                raise CertificateError(ErrorReason.BAD_REQUEST, "not a certificate or csr")

            template = parse_certificate_request(self, block.data)
            override_hosts(template, req.hosts)
            template.subject = populate_subject_from_csr(req.subject, template.subject)

            return self._sign(template, profile, serial_seq)

    def _sign(self, template: CertificateDraft, profile: SigningProfile, serial_seq: str) -> bytes:
        fill_template(template, self._policy.default, profile, serial_seq)

        issuance = apply_ca_constraints(self._ca, template)
        self.logger.debug(f"issuing {issuance.value} certificate")

        final: CertificateTemplate = template.freeze()
        issuer = final if issuance == Issuance.ROOT else self._ca.certificate
        try:
            cert = create_certificate(final, issuer, final.public_key, self._priv)
        except Exception as e:
            raise CertificateError(ErrorReason.UNKNOWN, str(e)) from e

        if issuance == Issuance.ROOT:
            try:
                root = x509.load_der_x509_certificate(cert.public_bytes(serialization.Encoding.DER), default_backend())
            except ValueError as e:
                raise CertificateError(ErrorReason.PARSE_FAILED, str(e)) from e
            self._ca = Active(root)
            self.logger.info(f"bootstrapped self-signed root certificate '{final.subject.common_name}'")

        self.logger.info(f"signed certificate with serial number {final.serial_number}")
        return cert.public_bytes(serialization.Encoding.PEM)
