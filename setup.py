"""
Setup script for Retirement Survival Simulation Package
Installs the survival_model package and the survival-sim command
"""
from setuptools import setup
import os


requirements_path = os.path.join(os.path.dirname(__file__), 'requirements.txt')
requirements = []
if os.path.exists(requirements_path):
    with open(requirements_path, 'r') as f:
        requirements = [line.strip() for line in f if line.strip() and not line.startswith('#')]


setup(
    name='retirement-survival-model',
    version='1.0',
    description='Monte Carlo survival odds and required capital for retirement withdrawal plans',
    packages=['survival_model'],
    py_modules=['run_simulation'],
    install_requires=requirements,
    extras_require={'test': ['pytest>=7']},
    entry_points={'console_scripts': ['survival-sim=survival_model.main:main']},
    python_requires='>=3.9',
    zip_safe=False,
)
