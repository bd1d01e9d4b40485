"""sea-builder.

A build utility that packages a Node.js application into a Single Executable
Application: it bundles the sources, optionally obfuscates them, and injects the
resulting blob into a copy of the Node.js runtime.
"""

__all__: list[str] = ["__version__"]

__version__: str = "1.0.0"
