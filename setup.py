from setuptools import setup, find_packages

setup(
    name="config-guardian",
    version="0.1.0",
    description="Detect configuration drift in files.",
    packages=find_packages(exclude=['tests', 'tests.*']),
    python_requires='>=3.8',
    install_requires=[
        'watchdog>=2.1.0',
        'PyYAML>=5.4',
        'python-dotenv>=0.19.0',
    ],
    extras_require={
        'test': [
            'pytest>=7.0',
        ],
    },
    entry_points={
        'console_scripts': [
            'config-guardian=config_guardian.cli:main',
        ],
    },
)
