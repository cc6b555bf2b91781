#!/usr/bin/env python3
import importlib.util
import os
import re
import shutil
import sys
from pathlib import Path

if sys.version_info < (3, 8):
    raise RuntimeError('Python version >= 3.8 required.')

# Remove MANIFEST before importing setuptools to prevent improper updates.
if os.path.exists('MANIFEST'):
    os.remove('MANIFEST')

from setuptools import Command, find_packages, setup  # noqa

CWD = Path(__file__).resolve(strict=True).parent


def _load_min_dependencies():
    # The package itself cannot be imported before its dependencies are
    # installed, so the module is loaded from its path.
    spec = importlib.util.spec_from_file_location('_min_dependencies', CWD / 'lincoa' / '_min_dependencies.py')
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _get_version():
    with open(CWD / 'lincoa' / '__init__.py') as fd:
        match = re.search(r'^__version__ = "(?P<version>[^"]+)"', fd.read(), re.MULTILINE)
    return match.group('version')


min_deps = _load_min_dependencies()


class CleanCommand(Command):
    description = 'Remove build artifacts from the source tree'
    user_options = []

    def initialize_options(self):
        pass

    def finalize_options(self):
        pass

    def run(self):
        # Remove the 'build', 'dist', '*.egg-info', '.pytest_cache', and '.tox'
        # directories from the current working directory.
        shutil.rmtree(CWD / 'build', ignore_errors=True)
        shutil.rmtree(CWD / 'dist', ignore_errors=True)
        for dirname in CWD.glob('*.egg-info'):
            shutil.rmtree(dirname)
        shutil.rmtree(CWD / '.pytest_cache', ignore_errors=True)
        shutil.rmtree(CWD / '.tox', ignore_errors=True)

        # Remove the 'MANIFEST' file.
        if Path(CWD, 'MANIFEST').is_file():
            os.unlink(CWD / 'MANIFEST')

        for dirpath, dirnames, _ in os.walk(CWD / 'lincoa'):
            dirpath = Path(dirpath).resolve(strict=True)
            for dirname in dirnames:
                if dirname == '__pycache__':
                    shutil.rmtree(dirpath / dirname)


def setup_package():
    metadata = dict(
        name='lincoa',
        version=_get_version(),
        description='LINear Constrained Optimization Algorithm',
        long_description=open(CWD / 'README.rst').read().rstrip(),
        long_description_content_type='text/x-rst',
        keywords='derivative-free optimization, trust-region method, linear constraints',
        license='BSD-3-Clause',
        classifiers=[
            'Development Status :: 2 - Pre-Alpha',
            'Intended Audience :: Developers',
            'Intended Audience :: Education',
            'Intended Audience :: Science/Research',
            'License :: OSI Approved :: BSD License',
            'Operating System :: MacOS',
            'Operating System :: Microsoft :: Windows',
            'Operating System :: POSIX',
            'Operating System :: POSIX :: Linux',
            'Operating System :: Unix',
            'Programming Language :: Python',
            'Programming Language :: Python :: 3',
            'Programming Language :: Python :: 3 :: Only',
            'Programming Language :: Python :: Implementation :: CPython',
            'Topic :: Scientific/Engineering',
            'Topic :: Scientific/Engineering :: Mathematics',
            'Topic :: Software Development',
            'Topic :: Software Development :: Libraries',
            'Topic :: Software Development :: Libraries :: Python Modules',
        ],
        platforms=['Linux', 'macOS', 'Unix', 'Windows'],
        cmdclass={'clean': CleanCommand},
        python_requires='>=3.8',
        packages=find_packages(include=['lincoa', 'lincoa.*']),
        install_requires=min_deps.tag_to_pkgs['install'],
        extras_require={'tests': min_deps.tag_to_pkgs['tests']},
        zip_safe=False,
    )
    setup(**metadata)


if __name__ == '__main__':
    setup_package()
