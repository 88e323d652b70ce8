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

import datetime
import os

from setuptools import find_packages, setup

base_version = os.environ.get("CASIGNER_BASE_VERSION")
release = os.environ.get("CASIGNER_RELEASE")
if release == "1" and base_version:
    version = base_version
else:
    today = datetime.date.today().timetuple()
    year = today[0] % 1000
    month = today[1]
    day = today[2]
    version = f"{base_version or '0.1.0'}.dev{year:02d}{month:02d}{day:02d}"


setup(
    name="casigner",
    version=version,
    description="Policy-governed X.509 certificate signing core for a certificate authority",
    package_dir={"casigner": "casigner"},
    packages=find_packages(
        where=".",
        include=[
            "casigner",
            "casigner.*",
        ],
        exclude=["tests", "tests.*"],
    ),
    python_requires=">=3.8",
    install_requires=[
        "asn1crypto>=1.4",
        "cryptography>=3.4",
        "PyYAML>=5.4",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
)
