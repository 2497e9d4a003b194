"""Semantic Kernel plugins for evidence extraction and policy retrieval."""

from .pdf_extractor import PDFExtractorPlugin
from .vision_extractor import VisionExtractorPlugin
from .document_extractor import DocumentExtractorPlugin
from .policy_retriever import PolicyRetrieverPlugin

__all__ = [
    'PDFExtractorPlugin',
    'VisionExtractorPlugin',
    'DocumentExtractorPlugin',
    'PolicyRetrieverPlugin'
]
