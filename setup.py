from setuptools import setup

with open("tapoplug/version.py") as f:
    exec(f.read())

setup(
    name="python-tapoplug",
    version=__version__,  # type: ignore # noqa: F821
    description="Python API for TP-Link Tapo smart plugs",
    url="https://github.com/python-tapoplug/python-tapoplug",
    author="",
    author_email="",
    license="GPLv3",
    packages=["tapoplug", "tapoplug.transports"],
    install_requires=[
        "aiohttp>=3",
        "asyncclick>=8.1.7",
        "cryptography>=1.9",
        "mashumaro>=3.11",
        "orjson>=3.9",
        "yarl>=1.9",
    ],
    extras_require={
        "test": [
            "freezegun",
            "multidict",
            "pytest",
            "pytest-asyncio",
            "pytest-freezer",
            "pytest-mock",
        ],
    },
    python_requires=">=3.11",
    entry_points={"console_scripts": ["tapoplug=tapoplug.cli:cli"]},
    zip_safe=False,
)
