"""Packaging for PortalQuest.

Install for development:
    pip install -e ".[test]"

Build a macOS .app bundle:
    pip install py2app
    python setup.py py2app
"""

import sys

from setuptools import setup, find_packages

APP = ["main.py"]
OPTIONS = {
    "argv_emulation": False,
    "plist": {
        "CFBundleName": "PortalQuest",
        "CFBundleDisplayName": "PortalQuest",
        "CFBundleIdentifier": "com.portalquest.app",
        "CFBundleVersion": "0.1.0",
        "CFBundleShortVersionString": "0.1.0",
        "LSMinimumSystemVersion": "13.0",
    },
}

extra = {}
if "py2app" in sys.argv:
    extra = {"app": APP, "options": {"py2app": OPTIONS}}

setup(
    name="PortalQuest",
    version="0.1.0",
    packages=find_packages(include=["portalquest", "portalquest.*"]),
    python_requires=">=3.10",
    install_requires=[
        "PyQt6",
        "SQLAlchemy>=2.0",
        "numpy",
        "requests",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": ["portalquest=portalquest.__main__:main"],
    },
    **extra,
)
