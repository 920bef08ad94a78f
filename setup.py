"""Packaging information for redisfs."""

import sys

import setuptools

from redisfs.constants import VERSION

if sys.version_info[:3] < (3, 7, 0):
    print("redisfs requires Python 3.7 to run.")
    sys.exit(1)

install_requires = [
    "redis>=4.2.0",
    "fasteners>=0.15",
    "semver>=2.9.1",
]

extras_require = {
    "dev": [
        "flake8>=3.7.9",
        "flake8-docstrings>=1.5.0",
        "flake8-import-order>=0.18.1",
        "black>=19.10b0",
        "mypy>=0.770",
        "pytest>=5.4.1",
        "pytest-cov>=2.8.1",
    ]
}


def _long_description():
    with open("README.md") as f:
        return f.read()


setuptools.setup(
    name="redisfs",
    version=VERSION,
    description="Mount the keys of a Redis database as files.",
    long_description=_long_description(),
    long_description_content_type="text/markdown",
    license="Apache",
    packages=setuptools.find_packages(),
    entry_points={"console_scripts": ["redisfs = redisfs.__main__:main"]},
    install_requires=install_requires,
    extras_require=extras_require,
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Environment :: Console",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.7",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: POSIX :: Linux",
        "Topic :: System :: Filesystems",
    ],
    python_requires=">=3.7",
)
