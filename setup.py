from setuptools import setup, find_packages


setup(
    name="paktool",
    version="0.1",
    packages=find_packages(include=["paktool", "paktool.*"]),
    description="PACK directory archives and the reversible .hse byte transform.",
    author="vercingetorx",
    python_requires=">=3.8",
    install_requires=[],
    entry_points={
        "console_scripts": [
            "paktool=paktool.cli:main",
        ]
    },
)
