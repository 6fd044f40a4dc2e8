from setuptools import setup, find_packages

# Core requirements - always installed
REQUIRED = [
    "pydantic>=2.0.0,<3.0.0",

    # Langchain
    "langchain-core>=0.3.19",
    "langchain-openai>=0.3.19",
]

# Optional dependencies
EXTRAS = {
    "test": [
        "pytest>=8.0.0",
        "pytest-asyncio>=0.23.0",
    ],
}

setup(
    name="calimem",
    version="0.1.0",
    description="Conversation context window and long-term memory store for AI agents",
    packages=find_packages("src", exclude=["tests", "tests.*"]),
    package_dir={"": "src"},
    python_requires=">=3.10",
    install_requires=REQUIRED,
    extras_require=EXTRAS,
    entry_points={
        "console_scripts": [
            "calimem=calimem.cli:main"
        ]
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Operating System :: OS Independent",
    ],
    long_description_content_type="text/markdown",
    long_description=open("README.md").read(),
    license="MIT",
    keywords="ai memory context summarization langchain llm agents sqlite",
)
