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

"""Signing policy.

A policy is a set of named profiles plus one default profile. A profile
controls the key usages, validity window and distribution URLs of the
certificates issued under it.

Example policy document (YAML or JSON):

    signing:
      default:
        usages: [signing, key encipherment, server auth, client auth]
        expiry: 8760h
      profiles:
        intermediate:
          usages: [cert sign, crl sign]
          expiry: 43800h
        server:
          usages: [signing, key encipherment, server auth]
          expiry: 2160h
          use_serial_seq: true
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Set, Tuple

import yaml
from cryptography.x509 import ObjectIdentifier
from cryptography.x509.oid import ExtendedKeyUsageOID

from casigner.errors import ErrorReason, PolicyError

logger = logging.getLogger(__name__)

ONE_YEAR = timedelta(hours=8760)
DEFAULT_BACKDATE = timedelta(minutes=5)

# Key usage names map onto the keyword arguments of x509.KeyUsage.
KEY_USAGES = {
    "signing": "digital_signature",
    "digital signature": "digital_signature",
    "content commitment": "content_commitment",
    "key encipherment": "key_encipherment",
    "key agreement": "key_agreement",
    "data encipherment": "data_encipherment",
    "cert sign": "key_cert_sign",
    "crl sign": "crl_sign",
    "encipher only": "encipher_only",
    "decipher only": "decipher_only",
}

EXT_KEY_USAGES = {
    "any": ExtendedKeyUsageOID.ANY_EXTENDED_KEY_USAGE,
    "server auth": ExtendedKeyUsageOID.SERVER_AUTH,
    "client auth": ExtendedKeyUsageOID.CLIENT_AUTH,
    "code signing": ExtendedKeyUsageOID.CODE_SIGNING,
    "email protection": ExtendedKeyUsageOID.EMAIL_PROTECTION,
    "s/mime": ExtendedKeyUsageOID.EMAIL_PROTECTION,
    "ipsec end system": ObjectIdentifier("1.3.6.1.5.5.7.3.5"),
    "ipsec tunnel": ObjectIdentifier("1.3.6.1.5.5.7.3.6"),
    "ipsec user": ObjectIdentifier("1.3.6.1.5.5.7.3.7"),
    "timestamping": ExtendedKeyUsageOID.TIME_STAMPING,
    "ocsp signing": ExtendedKeyUsageOID.OCSP_SIGNING,
}

_DURATION_PART = re.compile(r"(\d+)([dhms])")


def parse_duration(duration_str: str) -> timedelta:
    """Parse duration string like '8760h', '7d', '1h30m' to timedelta."""
    text = duration_str.strip().lower()
    if not text or _DURATION_PART.sub("", text):
        raise ValueError(f"Invalid duration format: {duration_str}")

    total = timedelta()
    for value, unit in _DURATION_PART.findall(text):
        value = int(value)
        if unit == "d":
            total += timedelta(days=value)
        elif unit == "h":
            total += timedelta(hours=value)
        elif unit == "m":
            total += timedelta(minutes=value)
        else:
            total += timedelta(seconds=value)
    return total


def _to_timedelta(value) -> timedelta:
    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)
    return parse_duration(str(value))


def _to_datetime(value) -> Optional[datetime]:
    if value is None:
        return None
    if not isinstance(value, datetime):
        value = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass
class SigningProfile:
    """Attributes of one named issuance profile."""

    usage: List[str] = field(default_factory=list)
    expiry: timedelta = timedelta()
    backdate: timedelta = timedelta()
    not_before: Optional[datetime] = None
    not_after: Optional[datetime] = None
    use_serial_seq: bool = False
    ocsp_url: str = ""
    crl_url: str = ""
    issuer_urls: Optional[List[str]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SigningProfile":
        return cls(
            usage=list(data.get("usages", [])),
            expiry=_to_timedelta(data.get("expiry", 0)),
            backdate=_to_timedelta(data.get("backdate", 0)),
            not_before=_to_datetime(data.get("not_before")),
            not_after=_to_datetime(data.get("not_after")),
            use_serial_seq=bool(data.get("use_serial_seq", False)),
            ocsp_url=data.get("ocsp_url", ""),
            crl_url=data.get("crl_url", ""),
            issuer_urls=data.get("issuer_urls"),
        )

    def usages(self) -> Tuple[Set[str], List[ObjectIdentifier], List[str]]:
        """Split the usage names into key usages and extended key usages.

        Returns:
            (key usage attribute names, extended key usage OIDs, unknown names)
        """
        key_usages = set()
        ext_key_usages = []
        unknown = []
        for name in self.usage:
            name = name.strip().lower()
            if name in KEY_USAGES:
                key_usages.add(KEY_USAGES[name])
            elif name in EXT_KEY_USAGES:
                oid = EXT_KEY_USAGES[name]
                if oid not in ext_key_usages:
                    ext_key_usages.append(oid)
            else:
                unknown.append(name)
        return key_usages, ext_key_usages, unknown

    def valid(self, is_default: bool = False) -> bool:
        key_usages, ext_key_usages, unknown = self.usages()
        if unknown:
            logger.debug(f"profile has unknown usages: {unknown}")
            return False
        if not key_usages and not ext_key_usages:
            logger.debug("profile has no usages")
            return False
        if self.expiry < timedelta() or self.backdate < timedelta():
            return False
        if is_default and self.expiry == timedelta() and self.not_after is None:
            logger.debug("default profile has no expiry")
            return False
        if self.not_before and self.not_after and self.not_before >= self.not_after:
            return False
        return True


def default_config() -> SigningProfile:
    """Built-in default profile used when a policy does not supply one."""
    return SigningProfile(
        usage=["signing", "key encipherment", "server auth", "client auth"],
        expiry=ONE_YEAR,
    )


@dataclass
class Signing:
    """A signing policy: named profiles plus the default profile."""

    profiles: Dict[str, SigningProfile] = field(default_factory=dict)
    default: Optional[SigningProfile] = field(default_factory=default_config)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Signing":
        default = data.get("default")
        return cls(
            profiles={name: SigningProfile.from_dict(p or {}) for name, p in (data.get("profiles") or {}).items()},
            default=SigningProfile.from_dict(default) if default is not None else default_config(),
        )

    def profile(self, name: str) -> SigningProfile:
        """Look up a profile, falling back to the default profile."""
        if name and name in self.profiles:
            return self.profiles[name]
        return self.default

    def valid(self) -> bool:
        if self.default is None or not self.default.valid(is_default=True):
            return False
        for name, profile in self.profiles.items():
            if profile is None or not profile.valid():
                logger.debug(f"invalid profile '{name}'")
                return False
        return True


def load_config(path: str) -> Signing:
    """Load a signing policy from a YAML or JSON file.

    Raises:
        PolicyError: if the file cannot be read or describes an invalid policy
    """
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise PolicyError(ErrorReason.INVALID_POLICY, f"could not read configuration file {path}") from e
    except yaml.YAMLError as e:
        raise PolicyError(ErrorReason.INVALID_POLICY, f"could not parse configuration file {path}") from e

    if not isinstance(data, dict):
        raise PolicyError(ErrorReason.INVALID_POLICY, f"configuration file {path} is empty")

    try:
        policy = Signing.from_dict(data.get("signing") or {})
    except (TypeError, ValueError, AttributeError) as e:
        raise PolicyError(ErrorReason.INVALID_POLICY, str(e)) from e

    if not policy.valid():
        raise PolicyError(ErrorReason.INVALID_POLICY, f"configuration file {path} has an invalid signing policy")
    return policy
