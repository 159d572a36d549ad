"""
Analysis Service

CONTRACT:
    Input:  AnalysisRequest
    Output: AnalysisResult

RESPONSIBILITIES:
    - Resolve the symbol and fetch its history
    - Decide the current price through the quote alignment gate
    - Compute indicators, levels and the trend vote
    - Optionally build a risk-bounded trade setup

Consumers receive plain data only.
"""

from marketcore.services.analysis.interface import AnalysisServiceInterface
from marketcore.services.analysis.service import AnalysisService, get_analysis_service

__all__ = [
    "AnalysisServiceInterface",
    "AnalysisService",
    "get_analysis_service",
]
