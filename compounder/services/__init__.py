"""Service modules"""
from .pipeline import ReinvestmentPipeline
from .registry import PositionRegistry
from .scheduler import DailyScheduler
from .farmer import Farmer

__all__ = ["ReinvestmentPipeline", "PositionRegistry", "DailyScheduler", "Farmer"]
