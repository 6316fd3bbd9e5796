from setuptools import setup, find_packages

setup(
    name="swapcover",
    version="0.1.0",
    packages=find_packages(),
    install_requires=[
        "msgpack",            # state values, callback payloads
        "rlp",                # typed-data encoding
        "cryptography",       # ECDSA signers
        "pycryptodome",       # keccak
        "PyNaCl",             # ed25519 multisig owners
        "prometheus_client",  # metrics
        "psutil",             # monitoring
    ],
    extras_require={
        "leveldb": ["plyvel"],
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": ["swapcover-deploy=swapcover.deploy:main"],
    },
)
