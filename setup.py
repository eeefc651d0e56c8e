#!/usr/bin/env python
from setuptools import setup, find_packages

with open("README.md", "r") as fh:
    long_description = fh.read()

setup(
    name='ldap-query-session',
    version='1.0.0',
    description='Bind to an LDAP directory, run a filter query and inspect the entries it returns',
    long_description=long_description,
    long_description_content_type="text/markdown",
    keywords=['ldap', 'active directory'],
    packages=find_packages(exclude=['bin']),
    include_package_data=True,
    python_requires='>=3.10',
    install_requires=[
        'django-environ',
        'ldap_filter',
        'python-ldap',
        'structlog',
    ],
    extras_require={
        'test': [
            'pytest',
            'python-ldap-faker',
        ],
    },
    entry_points={
        'console_scripts': [
            'ldapquery=ldapquery.cli:run',
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3"
    ],
)
