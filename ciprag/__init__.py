"""ciprag: retrieval & indexing engine for grounding answers on standards documents."""

__version__ = "0.1.0"
