# ============================================================================
# src/medical_digitizer/extraction/__init__.py
# ============================================================================
"""
Text-to-entities stages: OCR interfaces, baseline extraction, AI
enhancement, merging and record formatting.
"""

from .ocr import OCRProducer, DocumentScanner, PassThroughScanner
from .baseline_extractor import BaselineExtractor
from .ai_enhancer import AIEnhancementConfig, EntityEnhancer, EntityResponse, build_prompt
from .merger import EntityMerger, MergeResult, merge_entities
from .formatter import RecordFormatter

__all__ = [
    'OCRProducer',
    'DocumentScanner',
    'PassThroughScanner',
    'BaselineExtractor',
    'AIEnhancementConfig',
    'EntityEnhancer',
    'EntityResponse',
    'build_prompt',
    'EntityMerger',
    'MergeResult',
    'merge_entities',
    'RecordFormatter',
]
