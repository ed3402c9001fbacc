from abc import ABC, abstractmethod
import torch

from ..errors import ConfigurationError
from ..params import ResamplingType
from .random_variates import RandomVariateSource

class Resampler(ABC):
    '''
    Turns N weighted particles into N indices of particles to keep,
    drawn in proportion to the weights.
    '''
    registry = {}

    @abstractmethod
    def resample(
        self, 
        weights: torch.Tensor, 
        rng: RandomVariateSource, 
        cum_weights: torch.Tensor | None = None
    ) -> torch.Tensor: ...


def register(resampling_type):
    def wrapper(subclass):
        Resampler.registry[resampling_type] = subclass
        return subclass
    return wrapper

def load_resampler(resampling_type: ResamplingType) -> Resampler | None:
    '''Returns None when particles are not to be resampled.'''
    if resampling_type == ResamplingType.NONE:
        return None
    if resampling_type not in Resampler.registry:
        raise ConfigurationError(f'Unknown resampling type: {resampling_type}.')
    return Resampler.registry[resampling_type]()


class MultinomialResampler(Resampler):
    '''Inverse CDF sampling with N independent uniform variates.'''
    @abstractmethod
    def select(self, cum_weights: torch.Tensor, uniforms: torch.Tensor) -> torch.Tensor:
        '''For each variate u, the first index whose cumulative weight exceeds u.'''

    def resample(
        self, 
        weights: torch.Tensor, 
        rng: RandomVariateSource, 
        cum_weights: torch.Tensor | None = None
    ) -> torch.Tensor:
        '''Searches `cum_weights` when given, e.g. the table kept by the particle set.'''
        n_particles = weights.shape[0]
        if cum_weights is None:
            cum_weights = torch.cumsum(weights, dim=0)
        return self.select(cum_weights, rng.uniform(n_particles))


@register(ResamplingType.LINEAR_MULTINOMIAL)
class LinearMultinomialResampler(MultinomialResampler):
    '''Scans the whole cumulative table for every variate. O(N^2).'''
    def select(self, cum_weights: torch.Tensor, uniforms: torch.Tensor) -> torch.Tensor:
        n_particles = cum_weights.shape[0]
        cum_NN = cum_weights.unsqueeze(0).expand(uniforms.shape[0], n_particles)
        uniform_NN = uniforms.unsqueeze(1).expand(-1, n_particles)
        ids = torch.sum(cum_NN <= uniform_NN, dim=1)
        return ids.clamp_(max=n_particles - 1)


@register(ResamplingType.BINARY_MULTINOMIAL)
class BinaryMultinomialResampler(MultinomialResampler):
    '''Binary search of the cumulative table. O(N log N).'''
    def select(self, cum_weights: torch.Tensor, uniforms: torch.Tensor) -> torch.Tensor:
        n_particles = cum_weights.shape[0]
        ids = torch.searchsorted(cum_weights.contiguous(), uniforms.contiguous(), right=True)
        return ids.clamp_(max=n_particles - 1)


@register(ResamplingType.RESIDUAL)
class ResidualResampler(Resampler):
    '''
    Keeps floor(N * w_i) copies of every particle and draws the remaining
    particles from the fractional parts.
    '''
    def resample(
        self, 
        weights: torch.Tensor, 
        rng: RandomVariateSource, 
        cum_weights: torch.Tensor | None = None
    ) -> torch.Tensor:
        n_particles = weights.shape[0]
        scaled_weights = n_particles * weights.to(torch.float64)
        counts = torch.floor(scaled_weights).to(torch.long)
        deterministic_ids = torch.repeat_interleave(
            torch.arange(n_particles, dtype=torch.long), 
            counts
        )[:n_particles]
        n_residual = n_particles - deterministic_ids.shape[0]
        if n_residual == 0:
            return deterministic_ids

        residual_weights = (scaled_weights - counts).clamp_(min=0.0)
        if not float(residual_weights.sum()) > 0:
            # fractions lost to rounding: fall back on the weights themselves
            residual_weights = weights.to(torch.float64).clamp(min=0.0)
        residual_ids = rng.categorical(residual_weights / residual_weights.sum(), n_residual)
        return torch.cat([deterministic_ids, residual_ids])
