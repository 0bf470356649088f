from setuptools import setup, find_packages

setup(
    name="luckyslip",
    version="0.1.0",
    description="Peer-to-peer betting game engine for real football matches",
    author="Andy Cheng",
    packages=find_packages(exclude=["tests", "tests.*", "examples"]),
    install_requires=[
        "numpy>=1.24.0",
        "pandas>=2.0.0,<3",
        "tenacity>=8.2.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    python_requires=">=3.9",
    entry_points={
        "console_scripts": [
            "luckyslip=luckyslip.cli:main",
        ],
    },
)
