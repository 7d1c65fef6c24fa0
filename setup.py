# setup.py
from setuptools import setup, find_packages

setup(
    name="optirollup",
    version="0.1.0",
    packages=find_packages(include=["optirollup", "optirollup.*"]),
    python_requires=">=3.10",
    install_requires=[
        "pycryptodome",       # keccak
        "PyNaCl",             # ed25519 signature capability
        "msgpack",            # dispute bundles
        "prometheus_client",  # metrics
        "psutil",             # monitoring
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "optirollup-dispute=optirollup.dispute_tool:main",
        ],
    },
)
