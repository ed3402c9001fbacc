from .procedure import Procedure, register
from .track_sequence import TrackSequence
from .synthetic import Synthetic
