from setuptools import setup, find_packages

setup(
    name="git-air",
    version="1.0.0",
    packages=find_packages(include=["git_air", "git_air.*"]),
    install_requires=[
        "g4f",
        "rich",
    ],
    extras_require={
        "test": [
            "pytest",
            "GitPython",
        ],
    },
    entry_points={
        'console_scripts': [
            'git-air=git_air.cli:main',
        ],
    },
    author="Alaamer",
    author_email="",
    description="Recursive Git repository discovery with AI-assisted auto-commit and push",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    url="",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Software Development :: Version Control :: Git",
    ],
    python_requires=">=3.8",
)
