import os

import setuptools

# Make sure that README.md decodes in environments that use the C locale
# (which implies ASCII), by explicitly giving the encoding.
with open(os.path.join(os.path.dirname(__file__), "README.md"), encoding="utf-8") as f:
    long_description = f.read()


setuptools.setup(
    name="termctl",
    # MAJOR.MINOR.PATCH, per http://semver.org
    version="0.1.0",
    description="Pure-Python cross-platform terminal control: cursor, colors, raw keys",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="termctl contributors",
    keywords="terminal, tty, console, ansi, escape-sequences, raw-mode, keyboard",
    license="ISC",
    py_modules=(
        "termctl",
        "termdemo",
    ),
    entry_points={
        "console_scripts": ("termdemo = termdemo:main",)
    },
    # No runtime dependencies: termios/select on Unix, ctypes on Windows
    extras_require={"test": ["pytest"]},
    python_requires=">=3.6",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: Terminals",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "License :: OSI Approved :: ISC License (ISCL)",
        "Operating System :: POSIX",
        "Operating System :: Microsoft :: Windows",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: Implementation :: CPython",
        "Programming Language :: Python :: Implementation :: PyPy",
    ],
)
