from setuptools import setup, find_packages

setup(
    name='optmarket',
    version='0.1.0',
    packages=find_packages(include=['optmarket', 'optmarket.*']),
    install_requires=[
        'mpmath',
        'numpy',
        'pandas',
        'python-dotenv',
        'typing_extensions',
    ],
    extras_require={
        'test': ['pytest'],
    },
    description='Deterministic Python engine for an LS-LMSR options market: pricing, liquidity, settlement and redemption.',
    classifiers=[
        'Programming Language :: Python :: 3',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
    ],
    python_requires='>=3.11',
)
