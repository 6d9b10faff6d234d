#!/usr/bin/python3
# Setup file for showref
# Copyright (C) 2026 The showref contributors
# SPDX-License-Identifier: Apache-2.0 OR GPL-2.0-or-later

from setuptools import setup

from showref import __version__

tests_require = ["pytest"]


setup(
    name="showref",
    version=".".join(map(str, __version__)),
    description="List, verify and filter the refs of local git repositories",
    license="Apache-2.0 OR GPL-2.0-or-later",
    python_requires=">=3.10",
    packages=["showref"],
    package_data={"": ["py.typed"]},
    install_requires=['typing_extensions>=4.0; python_version < "3.12"'],
    extras_require={"test": tests_require},
    entry_points={"console_scripts": ["showref=showref.cli:_main"]},
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: POSIX",
        "Topic :: Software Development :: Version Control",
    ],
)
