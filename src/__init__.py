"""
TrainerHub - app shell for a personal-training service.

This package contains the complete application:
- core: Framework-agnostic session lifecycle, navigation and training data access
- infrastructure: External service integrations
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"
