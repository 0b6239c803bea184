from .validator import GraphValidator, MetadataReport, ValidationReport

__all__ = ["GraphValidator", "MetadataReport", "ValidationReport"]
