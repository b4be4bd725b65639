from .exponential_growth import fit, growth_rate_to_R
from .window_selection import WindowSelection, select_window
