# modules
from .logger import Logger
from .errors import ConfigurationError, PreconditionViolation, CollaboratorError, DegeneracyWarning
from .params import (
    ParticleFilterParams, DynamicModel, UpdateType, LikelihoodFunc, ResamplingType, MeanType
)
from .view_transformer import ViewTransformer

# packages
from .models import *
from .state_estimators import *
