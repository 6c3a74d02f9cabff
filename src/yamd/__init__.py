"""yamd: YAML attribute-grammar documents as an editable node graph."""

__version__ = "0.1.0"
