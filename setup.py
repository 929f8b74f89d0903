from setuptools import setup, find_packages

setup(
    name="autoprovision",
    version="1.0.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    install_requires=[
        "rich",
        "requests",
        "python-dotenv",
        "toml",
        "rich-argparse",
        "asn1crypto",
        "pbxproj",
        "openstep_parser",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    entry_points={
        "console_scripts": [
            "autoprovision=autoprovision.cli:main",
        ],
    },
)
