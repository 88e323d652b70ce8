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

"""Error taxonomy for certificate signing.

Every error raised by the signer carries a category and a reason. The
numeric code of an error is the category value plus the reason offset,
so callers that speak JSON can report a stable code without knowing the
exception class.
"""

import json
from enum import Enum, IntEnum
from typing import Optional


class ErrorCategory(IntEnum):
    """Broad area an error comes from."""

    CERTIFICATE = 1000
    PRIVATE_KEY = 2000
    POLICY = 5000
    CSR = 9000


class ErrorReason(str, Enum):
    """Specific failure within a category."""

    UNKNOWN = "Unknown"
    READ_FAILED = "ReadFailed"
    DECODE_FAILED = "DecodeFailed"
    PARSE_FAILED = "ParseFailed"

    # certificate
    VERIFY_FAILED = "VerifyFailed"
    BAD_REQUEST = "BadRequest"
    MISSING_SERIAL = "MissingSerial"

    # policy
    NO_KEY_USAGES = "NoKeyUsages"
    INVALID_POLICY = "InvalidPolicy"
    INVALID_REQUEST = "InvalidRequest"


_REASON_OFFSETS = {
    ErrorReason.UNKNOWN: 0,
    ErrorReason.READ_FAILED: 1,
    ErrorReason.DECODE_FAILED: 2,
    ErrorReason.PARSE_FAILED: 3,
    ErrorReason.VERIFY_FAILED: 200,
    ErrorReason.BAD_REQUEST: 300,
    ErrorReason.MISSING_SERIAL: 400,
    ErrorReason.NO_KEY_USAGES: 100,
    ErrorReason.INVALID_POLICY: 200,
    ErrorReason.INVALID_REQUEST: 300,
}

_CATEGORY_NAMES = {
    ErrorCategory.CERTIFICATE: "certificate",
    ErrorCategory.PRIVATE_KEY: "private key",
    ErrorCategory.POLICY: "policy",
    ErrorCategory.CSR: "CSR",
}

_REASON_MESSAGES = {
    ErrorReason.UNKNOWN: "Unknown {} error",
    ErrorReason.READ_FAILED: "Unable to read {}",
    ErrorReason.DECODE_FAILED: "Unable to decode {}",
    ErrorReason.PARSE_FAILED: "Unable to parse {}",
    ErrorReason.VERIFY_FAILED: "Unable to verify {}",
    ErrorReason.BAD_REQUEST: "Invalid certificate request",
    ErrorReason.MISSING_SERIAL: "Certificate serial number could not be determined",
    ErrorReason.NO_KEY_USAGES: "Policy violation: no key usages are allowed",
    ErrorReason.INVALID_POLICY: "Invalid or unknown policy",
    ErrorReason.INVALID_REQUEST: "Policy violation: request not compliant",
}


class SigningError(Exception):
    """Base class for all signer errors.

    Subclasses fix the category; the reason is given per raise.

    Args:
        reason: failure reason within the category
        detail: optional text appended to the standard message
    """

    category = ErrorCategory.CERTIFICATE

    def __init__(self, reason: ErrorReason, detail: Optional[str] = None):
        self.reason = reason
        self.detail = detail
        super().__init__(self.message)

    @property
    def code(self) -> int:
        return int(self.category) + _REASON_OFFSETS[self.reason]

    @property
    def message(self) -> str:
        text = _REASON_MESSAGES[self.reason].format(_CATEGORY_NAMES[self.category])
        if self.detail:
            text = f"{text}: {self.detail}"
        return text

    def to_json(self) -> str:
        return json.dumps({"code": self.code, "message": self.message})

    def __repr__(self):
        return f"{self.__class__.__name__}({self.reason.value}, code={self.code})"


class CertificateError(SigningError):
    category = ErrorCategory.CERTIFICATE


class PrivateKeyError(SigningError):
    category = ErrorCategory.PRIVATE_KEY


class PolicyError(SigningError):
    category = ErrorCategory.POLICY


class CSRError(SigningError):
    category = ErrorCategory.CSR
