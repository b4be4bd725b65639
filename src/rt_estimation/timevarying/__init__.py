from . import renewal_td, sliding_window
from .sliding_window import UncertainSIConfig
