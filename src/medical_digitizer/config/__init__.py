# ============================================================================
# src/medical_digitizer/config/__init__.py
# ============================================================================
"""
Convenient imports for all settings
"""

from .base_config import base_settings
from .enhancer_config import enhancer_settings
from .pipeline_config import pipeline_settings
from .logging_config import logging_settings
