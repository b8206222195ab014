"""Fleet configuration loading."""
from homefleet.config.loader import ConfigLoader

__all__ = ['ConfigLoader']
