from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as f:
    long_description = f.read()

setup(
    name="sshhop",
    version="1.0.0",
    description="SSH host shortcuts and an interactive file transfer wizard for the terminal",
    long_description=long_description,
    long_description_content_type="text/markdown",
    license="MIT",
    packages=find_packages(exclude=["tests", "tests.*"]),
    entry_points={
        "console_scripts": [
            "sshhop=sshhop.main:main",
        ],
    },
    install_requires=["questionary", "prompt_toolkit"],
    extras_require={"test": ["pytest"]},
    python_requires=">=3.8",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: MIT License",
        "Operating System :: MacOS",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python :: 3",
        "Topic :: System :: Networking",
    ],
    keywords=["ssh", "scp", "sftp", "tui", "file-transfer"],
)
