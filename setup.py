#!/usr/bin/env python3

from setuptools import setup, find_packages
import os

def read_readme():
    if os.path.exists('README.md'):
        with open('README.md', 'r', encoding='utf-8') as f:
            return f.read()
    return "Out-of-band DNS and HTTP interaction logger"

def read_requirements():
    if os.path.exists('requirements.txt'):
        with open('requirements.txt', 'r') as f:
            return [line.strip() for line in f if line.strip() and not line.startswith('#')]
    return ['twisted>=22.10.0', 'pyopenssl>=18.0.0', 'service-identity>=18.1.0', 'idna>=2.5']

setup(
    name='interaction-logger',
    version='1.0.0',
    description='Out-of-band DNS and HTTP interaction logger',
    long_description=read_readme(),
    long_description_content_type='text/markdown',
    author='Interaction Logger Team',
    author_email='admin@example.com',
    url='https://github.com/example/interaction-logger',

    packages=find_packages(exclude=['tests', 'tests.*']),
    package_data={
        'interaction_logger': ['templates/*.xhtml'],
    },

    install_requires=read_requirements(),
    extras_require={
        'test': ['pytest>=7.0'],
    },

    entry_points={
        'console_scripts': [
            'interaction-logger=interaction_logger.main:main',
        ],
    },

    classifiers=[
        'Development Status :: 4 - Beta',
        'Environment :: No Input/Output (Daemon)',
        'Framework :: Twisted',
        'Intended Audience :: Information Technology',
        'License :: OSI Approved :: MIT License',
        'Operating System :: POSIX :: Linux',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Topic :: Internet :: Name Service (DNS)',
        'Topic :: Security',
    ],

    python_requires='>=3.9',
)
