from setuptools import find_packages, setup

setup(
    name="flagsubmitter",
    version="0.1.0",
    description="Rate limited flag submission client for A/D CTF competitions.",
    author="Dušan Lazić",
    author_email="lazicdusan@protonmail.com",
    url="https://lazicdusan.com/avala",
    python_requires=">=3.10",
    install_requires=[
        "requests",
        "loguru",
        "pyyaml",
        "sqlalchemy>=2.0",
        "psycopg2-binary",
        "APScheduler>=3.10.1,<4",
        "click",
        "pydantic>=2",
        "pydantic-settings>=2.3",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={"flagsubmitter": ["initialization/files/*"]},
    include_package_data=True,
    entry_points={
        "console_scripts": [
            "fsub=flagsubmitter.cli:cli",
        ]
    },
)
