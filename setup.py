import os
import re
import codecs
from setuptools import setup, find_packages

HERE = os.path.abspath(os.path.dirname(__file__))


def read(*parts):
    with codecs.open(os.path.join(HERE, *parts), 'rb', 'utf-8') as f:
        return f.read()


def find_version(*parts):
    match = re.search(
        r"^__version__ = ['\"]([^'\"]*)['\"]", read(*parts), re.M)
    if match:
        return match.group(1)
    raise RuntimeError('Unable to find version string.')


setup(
    version=find_version('src', 'txauthz', '_version.py'),
    name='txauthz',
    description='ACME authorization client for Twisted',
    license='Expat',
    long_description=read('README.rst'),
    packages=find_packages(where='src'),
    package_dir={'': 'src'},
    zip_safe=True,
    python_requires='>=3.7',
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Framework :: Twisted',
        'Intended Audience :: Developers',
        'Natural Language :: English',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: Implementation :: CPython',
        'Programming Language :: Python :: Implementation :: PyPy',
        'Topic :: Software Development :: Libraries :: Python Modules',
        ],
    install_requires=[
        'acme>=1.30.0',
        'attrs>=19.1.0',
        'cryptography>=3.1',
        'eliot>=1.7.0',
        'josepy>=1.1.0',
        'pem>=16.1.0',
        'treq>=20.3.0',
        'twisted[tls]>=20.3.0',
        'zope.interface',
        ],
    extras_require={
        'test': [
            'hypothesis>=3.20.0',
            'pytest',
            'testtools>=2.1.0',
            ],
        },
    )
