"""Protocol interfaces for the yield compounder."""
from .chain import ChainGateway, ChainReadError

__all__ = ["ChainGateway", "ChainReadError"]
