# config/__init__.py

from .base import CONFIG_BY_ENV, Config, DevelopmentConfig, ProductionConfig, TestingConfig

__all__ = ["CONFIG_BY_ENV", "Config", "DevelopmentConfig", "TestingConfig", "ProductionConfig"]
