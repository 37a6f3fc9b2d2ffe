"""
Setup file.
"""

import os

from setuptools import find_packages, setup

URL = "https://github.com/bahamoth/crashpad-rs"
KEYWORDS = "crashpad crash-reporting minidump gn ninja build cross-compile bindings"
HERE = os.path.dirname(os.path.abspath(__file__))


def read_version() -> str:
    with open(os.path.join(HERE, "src", "crashpad_build", "__init__.py"), encoding="utf-8") as f:
        for line in f:
            if line.startswith("__version__"):
                return line.split("=", 1)[1].strip().strip('"')
    raise RuntimeError("__version__ not found")


if __name__ == "__main__":
    setup(
        name="crashpad-build",
        version=read_version(),
        description="Build pipeline that compiles Google Crashpad for a target triple and reports link metadata",
        keywords=KEYWORDS,
        url=URL,
        python_requires=">=3.8",
        package_dir={"": "src"},
        packages=find_packages(where="src"),
        install_requires=[
            "requests>=2.28",
            "tqdm>=4.64",
            "psutil>=5.9",
        ],
        extras_require={
            "test": ["pytest>=7.0"],
        },
        entry_points={
            "console_scripts": [
                "crashpad-build=crashpad_build.cli:main",
            ],
        },
        include_package_data=True)
