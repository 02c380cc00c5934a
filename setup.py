from setuptools import setup, find_packages

setup(
    name="taskagent",
    version="0.1.0",
    description="Remote task-execution agent that runs commands and moves artifacts for a controller",
    license="MIT",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "typer>=0.9.0",
        "rich>=13.0.0",
        "python-dotenv>=1.0.0",
        "websockets>=12.0",
    ],
    extras_require={
        "tests": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "taskagent=taskagent.main:task_agent",
        ],
    },
    python_requires=">=3.10",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
)
