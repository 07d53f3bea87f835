from setuptools import setup, find_packages
import os

# Read the contents of README file
this_directory = os.path.abspath(os.path.dirname(__file__))
try:
    with open(os.path.join(this_directory, 'README.md'), encoding='utf-8') as f:
        long_description = f.read()
except FileNotFoundError:
    long_description = "Scene Transcode - scene-parallel video transcoding to a target VMAF score"

setup(
    name="scene-transcode",
    version="1.0.0",
    author="Your Name",
    author_email="your.email@example.com",
    description="Scene-parallel, resumable video transcoding to a target VMAF score",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/yourusername/scene-transcode",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: End Users/Desktop",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Multimedia :: Video :: Conversion",
    ],
    python_requires=">=3.9",
    install_requires=[
        "tqdm>=4.0.0",
        "psutil>=5.0.0",  # CPU count for thread limits, CPU monitoring
        "fastapi>=0.100",
        "uvicorn>=0.20",
        "pydantic>=1.10",
    ],
    extras_require={
        "test": [
            "pytest",
            "httpx",
        ],
        "dev": [
            "pytest",
            "httpx",  # required by fastapi.testclient
            "black",
            "flake8",
        ],
    },
    entry_points={
        "console_scripts": [
            "scene-transcode=scene_transcode.cli:main_transcode",
        ],
    },
    include_package_data=True,
    zip_safe=False,
)
