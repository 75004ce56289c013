from setuptools import find_packages, setup

setup(
    name="perfly",
    version="0.1.0",
    packages=find_packages(
        include=[
            "perfly_common",
            "perfly_common.*",
            "perfly_persistence",
            "perfly_persistence.*",
            "perfly_analysis",
            "perfly_analysis.*",
            "perfly_processor",
            "perfly_processor.*",
            "perfly_server",
            "perfly_server.*",
            "perfly_admin",
            "perfly_admin.*",
        ]
    ),
    install_requires=[
        "requests>=2.31.0",
        "fastapi>=0.104.0",
        "pydantic>=2.0",
        "uvicorn>=0.24.0",
        "aiosqlite>=0.19.0",
        "click>=8.1.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-xdist>=3.3.0",
            "httpx>=0.25.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "perfly-processor=perfly_processor.__main__:main",
            "perfly-admin=perfly_admin.cli:cli",
        ],
    },
    python_requires=">=3.11",
)
