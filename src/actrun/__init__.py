"""actrun - run GitHub Actions workflows locally, once or on every change."""

__version__ = "0.1.0"
