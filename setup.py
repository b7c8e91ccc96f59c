import os
import re
from codecs import open

from setuptools import find_packages
from setuptools import setup

# Based on https://github.com/pypa/sampleproject/blob/main/setup.py
# and https://python-packaging-user-guide.readthedocs.org/

here = os.path.abspath(os.path.dirname(__file__))

with open(os.path.join(here, "README.md"), encoding="utf-8") as f:
    long_description = f.read()
long_description_content_type = "text/markdown"

with open(os.path.join(here, "peertls/version.py")) as f:
    match = re.search(r'VERSION = "(.+?)"', f.read())
    assert match
    VERSION = match.group(1)

setup(
    name="peertls",
    version=VERSION,
    description="Resolve TLS peer directives into client contexts for pyOpenSSL or the ssl module.",
    long_description=long_description,
    long_description_content_type=long_description_content_type,
    license="MIT",
    classifiers=[
        "License :: OSI Approved :: MIT License",
        "Development Status :: 4 - Beta",
        "Operating System :: MacOS",
        "Operating System :: POSIX",
        "Operating System :: Microsoft :: Windows",
        "Programming Language :: Python :: 3 :: Only",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: Implementation :: CPython",
        "Topic :: Security",
        "Topic :: Security :: Cryptography",
        "Topic :: Internet :: Proxy Servers",
        "Typing :: Typed",
    ],
    packages=find_packages(
        include=[
            "peertls",
            "peertls.*",
        ]
    ),
    include_package_data=True,
    entry_points={
        "console_scripts": [
            "peertls-dump = peertls.tools.main:peertls_dump",
        ],
    },
    python_requires=">=3.10",
    # https://packaging.python.org/en/latest/discussions/install-requires-vs-requirements/#install-requires
    # It is not considered best practice to use install_requires to pin dependencies to specific versions.
    install_requires=[
        "certifi>=2019.9.11",  # no semver here - this should always be on the last release!
        "cryptography>=42.0",
        "pyOpenSSL>=24.0",
        "pyparsing>=3.0",
        "ruamel.yaml>=0.17",
    ],
    extras_require={
        "dev": [
            "hypothesis>=5.8",
            "pytest-cov>=2.7.1",
            "pytest-timeout>=1.3.3",
            "pytest>=7.0",
        ],
    },
)
