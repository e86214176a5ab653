# setup.py
from setuptools import setup, find_packages

install_requires = [
    # --- STORAGE ---
    "duckdb>=0.10.0",

    # --- MODELS & CONFIG ---
    "pydantic>=2.0.0",
    "python-dotenv>=1.0.0",
    "pyyaml>=6.0.0",

    # --- CONSOLE ---
    "rich>=13.0.0",
]

extras_require = {
    # --- TESTS ---
    "test": [
        "pytest",
        "pytest-asyncio>=0.23",
    ],
}

setup(
    name="PyGTD_Engine",
    version="1.0.0",
    description="PyGTD|Engine - capture, process, engage",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    install_requires=install_requires,
    extras_require=extras_require,
    entry_points={
        "console_scripts": [
            "gtd=gtd.app.main:main",
        ],
    },
    python_requires=">=3.11",
)
