#!/usr/bin/env python
#

from setuptools import setup

from imapauth import __version__

setup(
    name="imapauth",
    version=__version__,
    description="Authenticate users against a remote IMAP server",
    long_description=(
        "imapauth checks a username and password by logging in to an IMAP "
        "server with them, with optional restriction of logins to a single "
        "mail domain and groups derived from the user's domain."
    ),
    author="Scanner",
    author_email="scanner@apricot.com",
    url="https://github.com/scanner/imapauth",
    packages=["imapauth"],
    python_requires=">=3.11",
    install_requires=[
        "aiofiles",
        "docopt",
        "python-dotenv",
        "python-json-logger>=3.1",
        "sentry-sdk",
    ],
    extras_require={
        "test": [
            "factory-boy",
            "Faker",
            "pytest",
            "pytest-asyncio",
            "pytest-mock",
            "trustme",
        ],
    },
    entry_points={
        "console_scripts": ["imapauth=imapauth.check_login:main"],
    },
)
