"""Web package initialization"""
from .app import create_app
from .context import Services, build_services
from .handlers import routes

__all__ = ['create_app', 'build_services', 'routes', 'Services']
