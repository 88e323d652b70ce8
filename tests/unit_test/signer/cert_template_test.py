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

"""Unit tests for certificate drafts, templates and create_certificate."""

import dataclasses
import ipaddress
from datetime import datetime, timedelta, timezone

import pytest
from cryptography import x509
from cryptography.x509.oid import AuthorityInformationAccessOID, NameOID

from casigner.signer import CertificateDraft, IdentityField, Name, SignatureAlgorithm, create_certificate


def filled_draft(public_key, **kwargs):
    now = datetime.now(timezone.utc).replace(microsecond=0)
    values = dict(
        public_key=public_key,
        subject=Name(common_name="svc.example.com", organization=["Acme"]),
        serial_number=1234,
        not_before=now,
        not_after=now + timedelta(days=1),
        key_usage={"digital_signature", "key_encipherment"},
        basic_constraints_valid=True,
    )
    values.update(kwargs)
    return CertificateDraft(**values)


class TestName:
    """Tests for the identity type."""

    def test_x509_round_trip_order(self):
        name = Name(
            common_name="cn",
            country=["US"],
            province=["TX"],
            locality=["Austin"],
            organization=["Acme", "Widgets"],
            organizational_unit=["Ops"],
        )

        x509_name = name.to_x509()

        assert [attr.oid for attr in x509_name] == [
            NameOID.COUNTRY_NAME,
            NameOID.STATE_OR_PROVINCE_NAME,
            NameOID.LOCALITY_NAME,
            NameOID.ORGANIZATION_NAME,
            NameOID.ORGANIZATION_NAME,
            NameOID.ORGANIZATIONAL_UNIT_NAME,
            NameOID.COMMON_NAME,
        ]
        assert Name.from_x509(x509_name) == name

    def test_empty_common_name_omitted(self):
        assert list(Name(organization=["Acme"]).to_x509()) == [
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Acme")
        ]

    def test_blank(self):
        name = Name(common_name="cn", locality=["Austin"])
        name.blank(IdentityField.CN)
        name.blank(IdentityField.L)
        assert name == Name()

    def test_copy_is_independent(self):
        name = Name(organization=["Acme"])
        copied = name.copy()
        copied.organization.append("Other")
        assert name.organization == ["Acme"]


class TestFreeze:
    """Tests for finalizing a draft."""

    def test_unfilled_draft(self, make_key):
        with pytest.raises(ValueError):
            CertificateDraft(public_key=make_key().public_key()).freeze()

    def test_frozen(self, make_key):
        template = filled_draft(make_key().public_key(), dns_names=["a.example.com"]).freeze()

        assert template.dns_names == ("a.example.com",)
        with pytest.raises(dataclasses.FrozenInstanceError):
            template.is_ca = True

    def test_later_draft_changes_not_visible(self, make_key):
        draft = filled_draft(make_key().public_key())
        template = draft.freeze()

        draft.subject.common_name = "changed"
        draft.dns_names.append("late.example.com")

        assert template.subject.common_name == "svc.example.com"
        assert template.dns_names == ()


class TestCreateCertificate:
    """Tests for the signing primitive."""

    def test_leaf(self, ca_key, ca_cert, make_key):
        subject_key = make_key()
        template = filled_draft(
            subject_key.public_key(),
            dns_names=["svc.example.com"],
            ip_addresses=[ipaddress.ip_address("10.0.0.1")],
            email_addresses=["ops@example.com"],
            ext_key_usage=[x509.oid.ExtendedKeyUsageOID.SERVER_AUTH],
            ocsp_servers=["http://ocsp.example.com"],
            issuing_certificate_urls=["http://ca.example.com/ca.crt"],
            crl_distribution_points=["http://crl.example.com/ca.crl"],
            subject_key_id=x509.SubjectKeyIdentifier.from_public_key(subject_key.public_key()).digest,
        ).freeze()

        cert = create_certificate(template, ca_cert, template.public_key, ca_key)

        assert cert.serial_number == 1234
        assert cert.issuer == ca_cert.subject
        assert cert.extensions.get_extension_for_class(x509.BasicConstraints).critical is True
        assert cert.extensions.get_extension_for_class(x509.KeyUsage).value.key_encipherment is True
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        assert san.get_values_for_type(x509.DNSName) == ["svc.example.com"]
        assert san.get_values_for_type(x509.IPAddress) == [ipaddress.ip_address("10.0.0.1")]
        assert san.get_values_for_type(x509.RFC822Name) == ["ops@example.com"]
        aia = cert.extensions.get_extension_for_class(x509.AuthorityInformationAccess).value
        assert [d.access_method for d in aia] == [
            AuthorityInformationAccessOID.OCSP,
            AuthorityInformationAccessOID.CA_ISSUERS,
        ]
        crl = cert.extensions.get_extension_for_class(x509.CRLDistributionPoints).value
        assert crl[0].full_name[0].value == "http://crl.example.com/ca.crl"

    def test_self_signed(self, ca_key):
        template = filled_draft(ca_key.public_key(), is_ca=True, max_path_len=2).freeze()

        cert = create_certificate(template, template, template.public_key, ca_key)

        assert cert.issuer == cert.subject
        constraints = cert.extensions.get_extension_for_class(x509.BasicConstraints).value
        assert constraints.ca is True
        assert constraints.path_length == 2
        with pytest.raises(x509.ExtensionNotFound):
            cert.extensions.get_extension_for_class(x509.AuthorityKeyIdentifier)

    def test_path_length_ignored_for_leaf(self, ca_key, ca_cert, make_key):
        template = filled_draft(make_key().public_key(), is_ca=False, max_path_len=3).freeze()

        cert = create_certificate(template, ca_cert, template.public_key, ca_key)

        assert cert.extensions.get_extension_for_class(x509.BasicConstraints).value.path_length is None

    def test_key_mismatch(self, ca_cert, make_key):
        template = filled_draft(make_key().public_key()).freeze()
        with pytest.raises(ValueError, match="does not match"):
            create_certificate(template, ca_cert, template.public_key, make_key())

    def test_algorithm_mismatch(self, ca_key, ca_cert, make_key):
        template = filled_draft(
            make_key().public_key(), signature_algorithm=SignatureAlgorithm.ECDSA_WITH_SHA256
        ).freeze()
        with pytest.raises(ValueError, match="cannot sign"):
            create_certificate(template, ca_cert, template.public_key, ca_key)
