from dataclasses import dataclass, field
from enum import Enum
from typing import List

from omegaconf import OmegaConf, DictConfig
from omegaconf.errors import OmegaConfBaseException

from .errors import ConfigurationError

class DynamicModel(Enum):
    RANDOM_WALK = 'random_walk'
    AUTO_REGRESSION1 = 'auto_regression1'

class UpdateType(Enum):
    ADDITIVE = 'additive'
    COMPOSITIONAL = 'compositional'

class LikelihoodFunc(Enum):
    GAUSSIAN = 'gaussian'
    RECIPROCAL = 'reciprocal'

class ResamplingType(Enum):
    NONE = 'none'
    LINEAR_MULTINOMIAL = 'linear_multinomial'
    BINARY_MULTINOMIAL = 'binary_multinomial'
    RESIDUAL = 'residual'

class MeanType(Enum):
    WEIGHTED = 'weighted'
    MAX_WEIGHT = 'max_weight'
    CORNERS = 'corners'

@dataclass
class ParticleFilterParams:
    '''
    Configuration of the particle filter search method. Fixed at construction.

    Exactly one of `pix_sigma` and `ssm_sigma` must be given. Each entry of
    `pix_sigma` is one mixture component with a sigma in pixels; each entry of
    `ssm_sigma` / `ssm_mean` is a per state dimension list (a single value is
    broadcast to every dimension).
    '''
    n_particles: int = 200
    min_particles: int = 0
    dynamic_model: DynamicModel = DynamicModel.RANDOM_WALK
    ar_factor: float = 0.5
    update_type: UpdateType = UpdateType.ADDITIVE
    likelihood_func: LikelihoodFunc = LikelihoodFunc.GAUSSIAN
    measurement_sigma: float = 0.1
    resampling_type: ResamplingType = ResamplingType.RESIDUAL
    mean_type: MeanType = MeanType.WEIGHTED
    reset_to_mean: bool = False
    adaptive_mixture: bool = False
    max_iters: int = 1
    epsilon: float = 0.01
    pix_sigma: List[float] = field(default_factory=list)
    ssm_sigma: List[List[float]] = field(default_factory=list)
    ssm_mean: List[List[float]] = field(default_factory=list)
    distr_weights: List[float] = field(default_factory=list)
    n_threads: int = 1
    seed: int = 0

    @classmethod
    def from_config(cls, config: DictConfig | dict) -> 'ParticleFilterParams':
        '''
        Validates a (partial) config against the schema, e.g. `config.filter`.
        Enum fields take member names, e.g. `resampling_type: RESIDUAL`.
        '''
        try:
            if isinstance(config, DictConfig):
                # interpolations may point outside of this node
                config = OmegaConf.to_container(config, resolve=True)
            schema = OmegaConf.structured(cls)
            merged = OmegaConf.merge(schema, config)
            return OmegaConf.to_object(merged)
        except OmegaConfBaseException as e:
            raise ConfigurationError(f'Invalid particle filter config: {e}') from e

    def validate(self) -> None:
        if self.n_particles < 1:
            raise ConfigurationError(f'n_particles must be >= 1, got {self.n_particles}.')
        if self.min_particles < 0:
            raise ConfigurationError(f'min_particles must be >= 0, got {self.min_particles}.')
        if self.measurement_sigma <= 0:
            raise ConfigurationError(f'measurement_sigma must be > 0, got {self.measurement_sigma}.')
        if self.max_iters < 1:
            raise ConfigurationError(f'max_iters must be >= 1, got {self.max_iters}.')
        if self.epsilon < 0:
            raise ConfigurationError(f'epsilon must be >= 0, got {self.epsilon}.')
        if self.n_threads < 1:
            raise ConfigurationError(f'n_threads must be >= 1, got {self.n_threads}.')
        if self.pix_sigma and self.ssm_sigma:
            raise ConfigurationError('pix_sigma and ssm_sigma are mutually exclusive.')
        if not self.pix_sigma and not self.ssm_sigma:
            raise ConfigurationError('No sigma specified: set either pix_sigma or ssm_sigma.')
        if self.pix_sigma and self.ssm_mean:
            raise ConfigurationError('ssm_mean can only be used together with ssm_sigma.')
