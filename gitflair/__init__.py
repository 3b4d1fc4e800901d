"""GitFlair: ask questions about a GitHub repository and get answers with file/line citations."""

__version__ = "0.1.0"
