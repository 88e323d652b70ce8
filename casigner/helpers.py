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

from typing import NamedTuple, Optional, Union

from asn1crypto import pem
from cryptography import x509
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import serialization

from casigner.errors import CertificateError, ErrorReason, PrivateKeyError

PEM_CERTIFICATE_REQUEST = "CERTIFICATE REQUEST"


class PemBlock(NamedTuple):
    type: str
    data: bytes


def decode_pem(data: Union[str, bytes]) -> Optional[PemBlock]:
    """Decode the first PEM block found in data.

    Returns:
        the block, or None if data holds no PEM block
    """
    if isinstance(data, str):
        data = data.encode("utf-8")

    if not pem.detect(data):
        return None
    try:
        block_type, _, der = pem.unarmor(data)
    except ValueError:
        return None
    return PemBlock(block_type, der)


def parse_certificate_pem(data: Union[str, bytes]) -> x509.Certificate:
    block = decode_pem(data)
    if block is None:
        raise CertificateError(ErrorReason.DECODE_FAILED)
    try:
        return x509.load_der_x509_certificate(block.data, default_backend())
    except ValueError as e:
        raise CertificateError(ErrorReason.PARSE_FAILED, str(e)) from e


def parse_private_key_pem(data: Union[str, bytes], password: Optional[bytes] = None):
    if isinstance(data, str):
        data = data.encode("ascii")
    if decode_pem(data) is None:
        raise PrivateKeyError(ErrorReason.DECODE_FAILED)
    try:
        return serialization.load_pem_private_key(data, password=password, backend=default_backend())
    except (ValueError, TypeError) as e:
        raise PrivateKeyError(ErrorReason.PARSE_FAILED, str(e)) from e


def read_file(path: str) -> bytes:
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as e:
        raise CertificateError(ErrorReason.READ_FAILED, f"{path}: {e.strerror}") from e
