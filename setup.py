from setuptools import find_packages, setup

setup(
    name="remoteview",
    version="0.1.0",
    description="Cached, indexed and pre-warmed local view of a remote SFTP tree",
    author="Daniel T Sasser II",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "cachetools>=5.0.0",
        "paramiko>=3.0.0",
    ],
    entry_points={
        "console_scripts": [
            "remoteview=remoteview.__main__:main",
        ],
    },
    python_requires=">=3.10",
    extras_require={
        "dev": [
            "pytest",
            "pytest-asyncio>=0.23",
            "build",
            "twine",
        ],
    },
)
