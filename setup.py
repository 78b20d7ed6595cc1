from setuptools import setup
from pathlib import Path

this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text(encoding="utf-8")

setup(
    name="cursortrail",
    version="0.3.0",
    description="Record pointer trajectories and replay them on any screen",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=["cursortrail", "cursortrail.pointer", "cursortrail.vision"],
    install_requires=[
        "zendriver",
        "Pillow",
        "pyautogui",
        "aiohttp",
        "python-dotenv",
    ],
    extras_require={
        "test": ["pytest", "pytest-asyncio"],
    },
    entry_points={
        "console_scripts": ["cursortrail=cursortrail.cli:main"],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.9",
)
