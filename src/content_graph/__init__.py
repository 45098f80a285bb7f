"""Content graph repository: filtered, batched, cached reads over the CMS schema."""

__version__ = "0.1.0"
