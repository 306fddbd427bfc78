#!/usr/bin/python3
# Setup file for gitledger
# Copyright (C) 2026 The gitledger Authors
# SPDX-License-Identifier: Apache-2.0 OR GPL-2.0-or-later

from setuptools import setup

tests_require = ["pytest"]

setup(
    name="gitledger",
    version="0.1.0",
    description="Use a content-addressed blob store and a ledger as a git remote",
    license="Apache-2.0 OR GPL-2.0-or-later",
    packages=["gitledger"],
    package_data={"": ["py.typed"]},
    python_requires=">=3.10",
    install_requires=[
        "dulwich>=0.22.0",
        "urllib3>=2.2.2",
    ],
    extras_require={"test": tests_require},
    entry_points={
        "console_scripts": [
            "git-remote-ledger=gitledger.remote_helper:main",
        ],
    },
)
