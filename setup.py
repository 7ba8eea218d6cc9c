from setuptools import find_packages, setup


def read_requirements(path):
    with open(path, "r") as f:
        return [line.strip() for line in f if not line.isspace()]


with open("README.md", "r", encoding="UTF-8") as fh:
    long_description = fh.read()

setup(
    name="gwzinbr",
    version="0.1.0",
    python_requires=">=3.7",
    install_requires=read_requirements("requirements.txt"),
    extras_require={
        "dev": read_requirements("dev-requirements.txt"),
    },
    packages=find_packages(exclude=("tests", "docs")),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Programming Language :: Python :: 3.7",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "License :: OSI Approved :: BSD License",
        "Operating System :: OS Independent",
        "Topic :: Scientific/Engineering :: GIS",
        "Topic :: Scientific/Engineering :: Mathematics",
    ],
    description="Bandwidth selection for geographically weighted zero-inflated negative binomial regression",
    long_description=long_description,
    long_description_content_type="text/markdown",
    license="BSD",
    keywords=[
        "geographically-weighted-regression",
        "zero-inflated",
        "negative-binomial",
        "poisson",
        "bandwidth",
        "golden-section-search",
    ],
    zip_safe=False,
)
