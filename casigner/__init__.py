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

"""Certificate signing core of a certificate authority.

Given a certificate signing request and a signing policy, the signer
produces an X.509 certificate under the CA key while enforcing the policy
on subject identity, validity, extensions and the CA hierarchy.

Usage:
    from casigner.signer import LocalSigner, SignRequest

    signer = LocalSigner.from_file("ca.pem", "ca.key")
    cert_pem = signer.sign(SignRequest(request=csr_pem, hosts=["api.example.com"]))
"""
