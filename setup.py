# setup.py
from setuptools import setup, find_packages

setup(
    name="mirrorurl",
    version="0.1.0",
    description="Асинхронное зеркалирование сайтов mirrorurl",
    packages=find_packages(exclude=("tests", "tests.*")),
    package_data={"mirrorurl.report": ["templates/*.j2"]},
    install_requires=[
        "aiohttp>=3.9",
        "Brotli>=1.1",
        "beautifulsoup4>=4.12",
        "click>=8.2",
        "Jinja2>=3.1",
        "pydantic>=2.5",
        "PyYAML>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={"console_scripts": ["mirrorurl=mirrorurl.cli:main"]},
    python_requires=">=3.11",
)
