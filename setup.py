#!/usr/bin/env python3
"""Setup script for mcremote - remote control channel for a managed service."""

from setuptools import setup, find_packages
import os

HERE = os.path.dirname(os.path.abspath(__file__))

# Read requirements
def read_requirements(filename):
    """Read requirements from file."""
    with open(os.path.join(HERE, filename)) as f:
        return [line.strip() for line in f if line.strip() and not line.startswith('#')]

# Read README for long description
def read_readme():
    """Read README.md for long description."""
    readme_path = os.path.join(HERE, 'README.md')
    if os.path.exists(readme_path):
        with open(readme_path, encoding='utf-8') as f:
            return f.read()
    return ""

setup(
    name="mcremote",
    version="0.1.0",
    description="Remote start/stop/restart and log streaming for a containerized service",
    long_description=read_readme(),
    long_description_content_type="text/markdown",
    author="mcremote contributors",
    author_email="",
    license="MIT",

    # Package discovery
    packages=find_packages(exclude=['tests', 'tests.*']),

    # Dependencies
    install_requires=read_requirements('requirements.txt'),

    extras_require={
        'dev': read_requirements('requirements-dev.txt') if os.path.exists(os.path.join(HERE, 'requirements-dev.txt')) else [],
    },

    # Python version requirement
    python_requires='>=3.8',

    # Classifiers
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: System Administrators',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.8',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Topic :: System :: Systems Administration',
    ],

    # Entry points
    entry_points={
        'console_scripts': [
            'mcremote-server=mcremote.server.server_main:main',
            'mcremote-client=mcremote.client.client_main:main',
        ],
    },
)
