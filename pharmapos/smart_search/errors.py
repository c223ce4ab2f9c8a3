"""
Error types for smart search and smart import.

Data-shape problems inside a spreadsheet never raise; these are reserved
for structural failures that abort an import as a whole.
"""


class MalformedFile(ValueError):
    """The input could not be parsed as a spreadsheet at all."""


class EmptyImport(ValueError):
    """The spreadsheet parsed fine but yielded no data rows."""


class ConstraintError(KeyError):
    """A record store rejected a write (e.g. an id that already exists)."""
