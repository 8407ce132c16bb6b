from setuptools import setup, find_packages

setup(
    name="squad-controller",
    version="0.1.0",
    packages=find_packages(),
    install_requires=[
        "kopf",
        "kubernetes",
        "flask",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    entry_points={
        "console_scripts": [
            "squad-controller=squad_controller.controller:main",
        ],
    },
    python_requires=">=3.9",
)
