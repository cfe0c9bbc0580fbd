"""Stage a Python monorepo into an isolated build context and package its dependencies."""

__version__ = "0.1.0"
