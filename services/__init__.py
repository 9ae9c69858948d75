"""Services package initialization"""
from .alerts import AdminAlertHandler
from .analysis import AnalysisService, ResultPersister
from .pagespeed import PageSpeedClient
from .sweeper import Sweeper

__all__ = ["AdminAlertHandler", "AnalysisService", "PageSpeedClient", "ResultPersister", "Sweeper"]
