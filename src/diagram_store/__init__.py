"""diagram-store: key/value repositories over a document database for a canvas workflow editor."""

__version__ = "0.1.0"
