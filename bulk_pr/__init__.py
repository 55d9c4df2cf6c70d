"""Clone, edit, and open pull requests against many GitHub repositories."""

__version__ = "1.0.0"
