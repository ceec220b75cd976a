# setup.py
from setuptools import setup, find_namespace_packages

setup(
    name="nexus-ledger",
    version="0.1.0",
    packages=find_namespace_packages(include=["nexus_ledger", "nexus_ledger.*"]),
    python_requires=">=3.10",
    install_requires=[
        "msgpack",            # template encoding
        "pycryptodome",       # keccak tx hashes
        "PyNaCl",             # hash salt
        "prometheus_client",  # metrics
        "psutil",             # monitoring
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
)
