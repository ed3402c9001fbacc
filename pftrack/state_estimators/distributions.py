from dataclasses import dataclass
import math
import torch
from typing import List, Sequence

from ..errors import ConfigurationError
from ..logger import Logger
from .random_variates import RandomVariateSource

# absorbs rounding in w * n when the product should be an integer
_QUOTA_EPS = 1e-9

def allocate_particles(
    n_particles: int,
    weights: Sequence[float],
    min_particles: int = 0
) -> List[int]:
    '''
    Splits `n_particles` between len(weights) distributions. Each gets
    `min_particles` plus its weighted share of the rest, rounded down; the
    residual is handed out one per distribution starting from index 0.
    '''
    n_distr = len(weights)
    if n_distr < 1:
        raise ConfigurationError('At least one distribution is needed.')
    if n_particles < 1:
        raise ConfigurationError(f'n_particles must be >= 1, got {n_particles}.')
    if min_particles < 0 or min_particles * n_distr > n_particles:
        raise ConfigurationError(
            f'Cannot give {min_particles} particles to each of {n_distr} '
            f'distributions with only {n_particles} particles.'
        )
    total = float(sum(weights))
    if any(w < 0 for w in weights) or not total > 0:
        raise ConfigurationError(f'Invalid distribution weights: {list(weights)}.')

    dynamic_particles = n_particles - min_particles * n_distr
    counts = [
        min_particles + int(math.floor(w / total * dynamic_particles + _QUOTA_EPS))
        for w in weights
    ]
    residual = n_particles - sum(counts)
    if residual < 0 or residual >= n_distr:
        raise ConfigurationError(
            f'Residual particle count {residual} is invalid for {n_distr} distributions.'
        )
    for distr_id in range(residual):
        counts[distr_id] += 1
    return counts

def _expand(values: Sequence[float], state_size: int, what: str) -> torch.Tensor:
    '''Broadcasts a single value to all state dimensions.'''
    if len(values) == 1:
        return torch.full((state_size,), float(values[0]), dtype=torch.float64)
    if len(values) != state_size:
        raise ConfigurationError(
            f'{what} has {len(values)} entries but the state size is {state_size}.'
        )
    return torch.tensor([float(v) for v in values], dtype=torch.float64)

@dataclass
class ProposalDistribution:
    id: int
    mean: torch.Tensor
    sigma: torch.Tensor
    weight: float
    n_particles: int = 0

class DistributionMixture:
    '''
    The Gaussian proposal components, their weights and the number of
    particles each one generates. Sigma is given either per state dimension
    (`ssm_sigma` / `ssm_mean`) or as a pixel displacement (`pix_sigma`) that
    is projected into the state space on `build`.
    '''
    def __init__(
        self,
        state_size: int,
        n_particles: int,
        min_particles: int = 0,
        ssm_sigma: Sequence[Sequence[float]] = (),
        ssm_mean: Sequence[Sequence[float]] = (),
        pix_sigma: Sequence[float] = (),
        distr_weights: Sequence[float] = ()
    ):
        self.state_size = state_size
        self.n_particles = n_particles
        self.min_particles = min_particles
        self.using_pix_sigma = len(pix_sigma) > 0

        if self.using_pix_sigma and len(ssm_sigma) > 0:
            raise ConfigurationError('pix_sigma and ssm_sigma are mutually exclusive.')
        if self.using_pix_sigma:
            if len(ssm_mean) > 0:
                raise ConfigurationError('ssm_mean can only be used together with ssm_sigma.')
            if any(s <= 0 for s in pix_sigma):
                raise ConfigurationError(f'pix_sigma must be positive, got {list(pix_sigma)}.')
            self.pix_sigma = [float(s) for s in pix_sigma]
            self.n_distr = len(self.pix_sigma)
            self.sigmas = []
            self.means = [torch.zeros(state_size, dtype=torch.float64)] * self.n_distr
        else:
            if len(ssm_sigma) == 0:
                raise ConfigurationError('No sigma specified: set either pix_sigma or ssm_sigma.')
            self.pix_sigma = []
            self.sigmas, self.means = self._pair(ssm_sigma, ssm_mean)
            self.n_distr = len(self.sigmas)
            if any((sigma < 0).any() for sigma in self.sigmas):
                raise ConfigurationError('ssm_sigma must be non-negative.')

        if len(distr_weights) == 0:
            distr_weights = [1.0] * self.n_distr
        if len(distr_weights) != self.n_distr:
            raise ConfigurationError(
                f'{len(distr_weights)} distribution weights given for {self.n_distr} distributions.'
            )
        total = float(sum(distr_weights))
        if any(w < 0 for w in distr_weights) or not total > 0:
            raise ConfigurationError(f'Invalid distribution weights: {list(distr_weights)}.')
        self.configured_weights = [float(w) / total for w in distr_weights]
        self.reset()

    def _pair(
        self, 
        ssm_sigma: Sequence[Sequence[float]], 
        ssm_mean: Sequence[Sequence[float]]
    ):
        '''
        Pairs sigmas with means. The longer list sets the number of
        components; the shorter one keeps reusing its last entry.
        '''
        n_distr = max(len(ssm_sigma), len(ssm_mean))
        sigmas, means = [], []
        sigma_id = mean_id = 0
        for _ in range(n_distr):
            sigmas.append(_expand(ssm_sigma[sigma_id], self.state_size, 'ssm_sigma'))
            if ssm_mean:
                means.append(_expand(ssm_mean[mean_id], self.state_size, 'ssm_mean'))
            else:
                means.append(torch.zeros(self.state_size, dtype=torch.float64))
            if sigma_id < len(ssm_sigma) - 1: sigma_id += 1
            if mean_id < len(ssm_mean) - 1: mean_id += 1
        return sigmas, means

    def reset(self) -> None:
        '''Restores the configured weights and particle counts.'''
        self.weights = list(self.configured_weights)
        self.counts = self.allocate(self.n_particles, self.min_particles)

    def allocate(self, n_particles: int, min_particles: int) -> List[int]:
        return allocate_particles(n_particles, self.weights, min_particles)

    def build(self, ssm, state: torch.Tensor) -> None:
        '''
        Projects pixel sigmas into state sigmas around `state`: each state
        dimension gets the displacement that moves the sampling points by
        `pix_sigma` pixels (RMS).
        '''
        if not self.using_pix_sigma: return
        jacobian = ssm.point_jacobian(state)
        n_pts = jacobian.shape[0] // 2
        # RMS over points of the 2D point displacement per unit state change
        rms = torch.sqrt((jacobian ** 2).sum(dim=0) / n_pts)
        if (rms <= 0).any() or not torch.isfinite(rms).all():
            raise ConfigurationError(
                'Cannot project pix_sigma: the sampling points do not depend on every state dimension.'
            )
        self.sigmas = [pix_sigma / rms for pix_sigma in self.pix_sigma]
        Logger.debug(f'State sigma from pix_sigma: {[s.tolist() for s in self.sigmas]}')

    @property
    def is_built(self) -> bool:
        return len(self.sigmas) == self.n_distr

    @property
    def distributions(self) -> List[ProposalDistribution]:
        return [
            ProposalDistribution(
                id = distr_id,
                mean = self.means[distr_id],
                sigma = self.sigmas[distr_id] if self.is_built else None,
                weight = self.weights[distr_id],
                n_particles = self.counts[distr_id]
            )
            for distr_id in range(self.n_distr)
        ]

    def particle_distribution_ids(self) -> torch.Tensor:
        '''Source distribution of each particle, assigned contiguously from distribution 0.'''
        return torch.repeat_interleave(
            torch.arange(self.n_distr, dtype=torch.long),
            torch.tensor(self.counts, dtype=torch.long)
        )

    def sample(self, distr_ids: torch.Tensor, rng: RandomVariateSource) -> torch.Tensor:
        '''One Gaussian perturbation per particle from its source distribution.'''
        means = torch.stack(self.means)[distr_ids]
        sigmas = torch.stack(self.sigmas)[distr_ids]
        return means + sigmas * rng.normal(len(distr_ids), self.state_size)

    def adapt(self, particle_weights: torch.Tensor, distr_ids: torch.Tensor) -> None:
        '''
        Sets each distribution's weight to the total weight of the particles
        it generated and re-allocates the particle counts accordingly.
        '''
        distr_wts = torch.zeros(self.n_distr, dtype=torch.float64)
        distr_wts.scatter_add_(0, distr_ids, particle_weights.to(torch.float64))
        total = float(distr_wts.sum())
        if not total > 0: return
        self.weights = (distr_wts / total).tolist()
        self.counts = self.allocate(self.n_particles, self.min_particles)
