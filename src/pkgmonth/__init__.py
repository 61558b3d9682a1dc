"""pkgmonth - keep monthly package download totals complete and fresh."""

__version__ = "0.1.0"
