# setup.py
from setuptools import setup, find_namespace_packages

setup(
    name="watchmerge",
    version="0.1.0",
    description="Watch a tree of Java sources and keep a single merged file up to date",
    packages=find_namespace_packages(where="src", include=["watchmerge", "watchmerge.*"]),
    package_dir={"": "src"},
    python_requires=">=3.9",
    install_requires=[
        "watchdog>=4.0",
        "tree-sitter>=0.23",
        "tree-sitter-language-pack>=0.7,<1",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        'console_scripts': [
            'watchmerge=watchmerge.main:main',
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
)
