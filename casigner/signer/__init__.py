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

"""Signers and the request types they accept.

Components:
- LocalSigner: signs requests with an in-process CA key
- SignRequest / Subject: what a caller asks to be signed
- CertificateDraft / CertificateTemplate: certificate contents before signing
"""

from casigner.signer.local import (
    Active,
    Issuance,
    LocalSigner,
    Uninitialized,
    apply_ca_constraints,
    override_hosts,
    populate_subject_from_csr,
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

__all__ = [
    "LocalSigner",
    "SignRequest",
    "Subject",
    "Name",
    "IdentityField",
    "SignatureAlgorithm",
    "CertificateDraft",
    "CertificateTemplate",
    "Active",
    "Uninitialized",
    "Issuance",
    "MAX_PATH_LEN",
    "apply_ca_constraints",
    "create_certificate",
    "default_sig_algo",
    "fill_template",
    "override_hosts",
    "parse_certificate_request",
    "populate_subject_from_csr",
]
