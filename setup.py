"""
Setup script for gossipchain package
"""

from setuptools import setup, find_packages

setup(
    name="gossipchain",
    version="0.1.0",
    packages=find_packages(include=["gossipchain", "gossipchain.*"]),
    install_requires=[
        "cryptography>=41.0",
        "python-dotenv>=1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
        ],
    },
    entry_points={
        "console_scripts": [
            "gossipchain-node=gossipchain.cli.node_cli:main",
        ],
    },
    python_requires=">=3.10",
    author="GossipChain",
    description="Proof-of-work ledger replicated between peers over a gossip channel",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
)
