from setuptools import setup, find_packages

setup(
    name='tofudl',
    version='0.1.0',
    package_dir={'': 'src'},
    packages=find_packages(where='src'),
    python_requires='>=3.10',
    install_requires=[
        'requests',
        'urllib3',
        'PyYAML',
        'platformdirs',
        'rich',
        'aiohttp>=3.9',
        'python-gnupg',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-mock',
            'pytest-asyncio',
        ],
    },
    entry_points={
        'console_scripts': [
            'tofudl=tofudl.cli:main',
        ],
    },
)
