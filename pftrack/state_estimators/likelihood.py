import math
import warnings
import torch

from ..errors import ConfigurationError, DegeneracyWarning, PreconditionViolation
from ..logger import Logger
from ..params import LikelihoodFunc

class LikelihoodEvaluator:
    '''
    Scores particles against the reference patch taken at initialization
    and turns the similarities into normalized weights.

    The Gaussian likelihood is exp((s - max_similarity) / (2 * sigma^2)).
    `max_similarity` starts as the self-similarity of the reference patch,
    stays fixed while a frame is being scored and is raised afterwards if
    any particle beat it.
    '''
    def __init__(
        self,
        appearance_model,
        ssm,
        measurement_sigma: float,
        likelihood_func: LikelihoodFunc = LikelihoodFunc.GAUSSIAN
    ):
        if measurement_sigma <= 0:
            raise ConfigurationError(f'measurement_sigma must be > 0, got {measurement_sigma}.')
        self.appearance_model = appearance_model
        self.ssm = ssm
        self.measurement_sigma = measurement_sigma
        self.measurement_factor = 1.0 / (2.0 * measurement_sigma ** 2)
        self.likelihood_func = likelihood_func
        self.max_similarity = None

    @property
    def is_initialized(self) -> bool:
        return self.max_similarity is not None

    def initialize(self, initial_state: torch.Tensor) -> float:
        '''Takes the reference patch at `initial_state` and resets the running maximum.'''
        pts = self.ssm.points_from_state(initial_state)
        reference = self.appearance_model.extract_patch(pts)
        self.appearance_model.set_reference(reference)
        self.max_similarity = float(self.appearance_model.self_similarity())
        return self.max_similarity

    def score(self, state: torch.Tensor) -> float:
        '''Similarity of the patch under `state` with the reference patch.'''
        if not self.is_initialized:
            raise PreconditionViolation('LikelihoodEvaluator.score() called before initialize().')
        pts = self.ssm.points_from_state(state)
        patch = self.appearance_model.extract_patch(pts)
        return float(self.appearance_model.similarity(patch, self.appearance_model.reference))

    def likelihoods(self, similarities: torch.Tensor) -> torch.Tensor:
        match self.likelihood_func:
            case LikelihoodFunc.GAUSSIAN:
                return torch.exp((similarities - self.max_similarity) * self.measurement_factor)
            case LikelihoodFunc.RECIPROCAL:
                return 1.0 / (1.0 + (self.max_similarity - similarities).clamp(min=0.0))
            case _:
                raise ConfigurationError(f'Unknown likelihood function: {self.likelihood_func}.')

    @staticmethod
    def normalize(likelihoods: torch.Tensor) -> torch.Tensor:
        '''
        Weights summing to 1. If the likelihoods sum to zero (or are not
        finite) every particle gets 1/N instead and a DegeneracyWarning is issued.
        '''
        n_particles = likelihoods.shape[0]
        total = float(likelihoods.sum())
        if not math.isfinite(total) or total <= 0.0:
            msg = f'Particle weights collapsed (sum={total}); resetting to uniform.'
            Logger.warning(msg)
            warnings.warn(msg, DegeneracyWarning, stacklevel=2)
            return torch.full((n_particles,), 1.0 / n_particles, dtype=torch.float64)
        return likelihoods / total

    def weights(self, similarities: torch.Tensor) -> torch.Tensor:
        weights = self.normalize(self.likelihoods(similarities))
        # the bound moves only between scoring passes
        frame_max = float(similarities.max())
        if math.isfinite(frame_max) and frame_max > self.max_similarity:
            Logger.debug(f'max_similarity raised from {self.max_similarity} to {frame_max}.')
            self.max_similarity = frame_max
        return weights
