"""tofudl: download, verify, cache and mirror OpenTofu release binaries."""

__version__ = "0.1.0"
