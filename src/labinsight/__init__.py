"""LabInsight: chunking, retrieval and multi-stage analysis for lab reports."""

__version__ = "0.1.0"
