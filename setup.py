"""
Setup script for FlowerScope.

Installs the flowerscope package, its bundled model assets and the
command-line and Streamlit entry points.

Author: FlowerScope Team
"""

import re
from setuptools import setup, find_packages
from pathlib import Path


# Read README for long description
def read_readme():
    readme_path = Path(__file__).parent / "README.md"
    if readme_path.exists():
        with open(readme_path, "r", encoding="utf-8") as fh:
            return fh.read()
    return "FlowerScope - dual-pass flower and object detection for single photos"


# Read requirements
def read_requirements():
    requirements_path = Path(__file__).parent / "requirements.txt"
    if requirements_path.exists():
        with open(requirements_path, "r", encoding="utf-8") as fh:
            return [
                line.strip()
                for line in fh
                if line.strip() and not line.startswith("#") and not line.startswith("--")
            ]
    return []


# Read version from package without importing it
def get_version():
    """Extract version from package."""
    init_path = Path(__file__).parent / "flowerscope" / "__init__.py"
    match = re.search(r'^__version__ = "([^"]+)"', init_path.read_text(encoding="utf-8"), re.M)
    return match.group(1) if match else "1.0.0"


setup(
    name="flowerscope",
    version=get_version(),
    author="FlowerScope Team",
    author_email="contact@example.com",
    description="Dual-pass flower and object detection for single photos",
    long_description=read_readme(),
    long_description_content_type="text/markdown",

    # Package configuration
    packages=find_packages(include=["flowerscope", "flowerscope.*"]),

    # Dependencies
    python_requires=">=3.9",
    install_requires=read_requirements(),

    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-cov>=4.1.0",
            "pytest-mock>=3.11.1",
            "pytest-timeout>=2.1.0",
            "black>=23.7.0",
            "flake8>=6.0.0",
            "isort>=5.12.0",
        ],
        "test": [
            "pytest>=7.4.0",
            "pytest-timeout>=2.1.0",
        ],
    },

    # Entry points for command-line tools
    entry_points={
        "console_scripts": [
            "flowerscope-analyze=flowerscope.cli:main",
            "flowerscope-ui=flowerscope.ui.app:launch",
        ],
    },

    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Science/Research",
        "Topic :: Scientific/Engineering :: Image Recognition",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
        "Framework :: TensorFlow",
    ],

    keywords=[
        "computer-vision", "object-detection", "flowers",
        "tensorflow-lite", "torchvision"
    ],

    # Bundled model assets live inside the package
    package_data={
        "flowerscope": ["assets/*.txt", "assets/*.tflite"],
    },
    include_package_data=True,

    zip_safe=False,
    license="MIT",
    platforms=["any"],
)
