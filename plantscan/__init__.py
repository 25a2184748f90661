"""Plant disease scanning API with metered free and paid scans."""

__version__ = "0.3.0"
