"""Models package initialization"""
from .metrics import PerformanceMetrics
from .monitored_target import MonitoredTarget
from .records import AnalysisRecord, ApiUsageLog, QuickTestRecord, ScreenshotRecord

__all__ = [
    'AnalysisRecord',
    'ApiUsageLog',
    'MonitoredTarget',
    'PerformanceMetrics',
    'QuickTestRecord',
    'ScreenshotRecord',
]
