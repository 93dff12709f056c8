"""qcstage: run a containerised quantum-chemistry converter on local files."""

__version__ = "0.3.0"
