from setuptools import setup, find_packages

setup(
    name='forester',
    version='0.1.0',
    packages=find_packages(exclude=('tests', 'tests.*', 'experiments', 'experiments.*')),
    description='Random forests, extremely randomized trees and rotation forests on numpy',
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
    python_requires='>=3.10',
    install_requires=[
        'numpy>=1.22',
        'joblib>=1.2',
        'loguru>=0.7',
    ],
    extras_require={
        'test': ['pytest>=7'],
        'experiments': ['scikit-learn>=1.1'],
    },
)
