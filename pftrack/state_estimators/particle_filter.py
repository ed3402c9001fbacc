from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict
from enum import Enum
import torch
from typing import Tuple

from ..errors import PreconditionViolation
from ..logger import Logger
from ..math import to_gaussian, effective_sample_size
from ..params import ParticleFilterParams, MeanType
from .distributions import DistributionMixture
from .likelihood import LikelihoodEvaluator
from .particle_set import ParticleSet
from .random_variates import RandomVariateSource
from .resampling import load_resampler

class TrackerState(Enum):
    UNINITIALIZED = 0
    TRACKING = 1

class ParticleFilter:
    '''
    Particle filter search method. Every frame each particle is perturbed
    by its source distribution, scored against the reference patch,
    weighted, and the population is resampled. The estimate of the frame is
    the weighted mean (or max weight particle, or mean of corners) of the
    scored population.

    Sampling and scoring of different particles are independent and run on
    a thread pool when `n_threads > 1`; Gaussian noise is always drawn up
    front so results do not depend on the number of threads.
    '''
    def __init__(
        self,
        appearance_model,
        ssm,
        params: ParticleFilterParams
    ):
        params.validate()
        self.params = params
        self.appearance_model = appearance_model
        self.ssm = ssm
        self.state_size = ssm.state_size

        self.rng = RandomVariateSource(params.seed)
        self.mixture = DistributionMixture(
            state_size = self.state_size,
            n_particles = params.n_particles,
            min_particles = params.min_particles,
            ssm_sigma = params.ssm_sigma,
            ssm_mean = params.ssm_mean,
            pix_sigma = params.pix_sigma,
            distr_weights = params.distr_weights
        )
        self.particles = ParticleSet(params.n_particles, self.state_size)
        self.evaluator = LikelihoodEvaluator(
            appearance_model = appearance_model,
            ssm = ssm,
            measurement_sigma = params.measurement_sigma,
            likelihood_func = params.likelihood_func
        )
        self.resampler = load_resampler(params.resampling_type)
        self._estimate = {
            MeanType.WEIGHTED: self._weighted_mean,
            MeanType.MAX_WEIGHT: self._max_weight_state,
            MeanType.CORNERS: self._mean_of_corners,
        }[params.mean_type]
        self._executor = None
        if params.n_threads > 1:
            self._executor = ThreadPoolExecutor(max_workers=params.n_threads)

        self.tracker_state = TrackerState.UNINITIALIZED
        self.frame_id = 0
        self.mean_state = None
        self.corners = None
        self.max_wt_id = 0
        self.ess = float(params.n_particles)
        Logger.debug('ParticleFilter:', asdict(params))

    @property
    def max_similarity(self) -> float | None:
        return self.evaluator.max_similarity

    def _require_tracking(self, method: str) -> None:
        if self.tracker_state != TrackerState.TRACKING:
            raise PreconditionViolation(f'ParticleFilter.{method}() called before initialize().')

    @torch.no_grad()
    def initialize(self, corners, image = None) -> torch.Tensor:
        '''
        Starts tracking the region `corners` (4, 2) in `image` (or in the
        image already given to the appearance model).
        '''
        # a failed re-initialization must not leave the old track running
        self.tracker_state = TrackerState.UNINITIALIZED
        if image is not None:
            self.appearance_model.set_image(image)
        self.ssm.initialize(corners)
        initial_state = self.ssm.state_from_corners(corners)

        self.evaluator.initialize(initial_state)
        self.mixture.reset()
        self.mixture.build(self.ssm, initial_state)
        self.particles.initialize(initial_state, self.mixture.particle_distribution_ids())

        self.mean_state = initial_state.clone()
        self.corners = self.ssm.corners_from_state(self.mean_state)
        self.frame_id = 0
        self.ess = float(self.params.n_particles)
        self.tracker_state = TrackerState.TRACKING
        Logger.info(
            f'Initialized {self.params.n_particles} particles in {self.mixture.n_distr} '
            f'distribution(s) {self.mixture.counts}, max_similarity={self.max_similarity:.6g}.'
        )
        return self.corners.clone()

    @torch.no_grad()
    def update(self, image = None) -> torch.Tensor:
        '''Tracks the region into the next frame and returns its corners.'''
        self._require_tracking('update')
        if image is not None:
            self.appearance_model.set_image(image)

        prev_corners = self.corners
        for iter_id in range(self.params.max_iters):
            self._iterate()
            update_norm = float(torch.linalg.norm(self.corners - prev_corners, dim=1).mean())
            prev_corners = self.corners
            if update_norm < self.params.epsilon:
                break

        self.frame_id += 1
        return self.corners.clone()

    @torch.no_grad()
    def set_region(self, corners) -> None:
        '''Moves every particle to `corners` keeping the distributions as they are.'''
        self._require_tracking('set_region')
        state = self.ssm.state_from_corners(corners)
        self.particles.initialize(state, self.particles.curr_distr_ids.clone())
        self.mean_state = state.clone()
        self.corners = self.ssm.corners_from_state(state)

    def reset(self) -> None:
        self.tracker_state = TrackerState.UNINITIALIZED

    def _iterate(self) -> None:
        '''
        One sample, score, resample pass. The estimate is read from the
        scored generation before it is resampled, so it carries no
        resampling noise and the max weight particle is still defined.
        '''
        params = self.params
        particles = self.particles

        noise = self.mixture.sample(particles.curr_distr_ids, self.rng)
        deltas = particles.perturbations(noise, params.dynamic_model, params.ar_factor)
        states, similarities = self._propagate(particles.curr_states, deltas)
        particles.commit(states, deltas)

        # everything below needs the weights of the whole population
        weights = self.evaluator.weights(similarities)
        particles.set_weights(weights)
        self.max_wt_id = int(torch.argmax(weights))
        self.ess = effective_sample_size(weights)

        self.mean_state = self._estimate(states, weights)
        self.corners = self.ssm.corners_from_state(self.mean_state)

        if params.adaptive_mixture:
            self.mixture.adapt(weights, particles.curr_distr_ids)
        if self.resampler is not None:
            particles.resample(
                self.resampler.resample(weights, self.rng, particles.cum_weights)
            )
        if params.adaptive_mixture:
            particles.assign_distributions(self.mixture.particle_distribution_ids())
        if params.reset_to_mean:
            particles.initialize(self.mean_state, particles.curr_distr_ids.clone())

        Logger.debug(
            f'frame={self.frame_id}: ess={self.ess:.1f} '
            f'max_wt={float(weights[self.max_wt_id]):.4f} state={self.mean_state.tolist()}'
        )
        Logger.log_metrics({
            'ess': self.ess,
            'max_weight': float(weights[self.max_wt_id]),
            'corners': self.corners.reshape(-1).tolist(),
        })

    def _propagate_particle(
        self, 
        state: torch.Tensor, 
        delta: torch.Tensor
    ) -> Tuple[torch.Tensor, float]:
        new_state = self.ssm.apply_update(state, delta, self.params.update_type)
        return new_state, self.evaluator.score(new_state)

    def _propagate(
        self, 
        states: torch.Tensor, 
        deltas: torch.Tensor
    ) -> Tuple[torch.Tensor, torch.Tensor]:
        '''Applies the updates and scores every particle (fork-join over particles).'''
        if self._executor is not None:
            results = list(self._executor.map(self._propagate_particle, states, deltas))
        else:
            results = [self._propagate_particle(s, d) for s, d in zip(states, deltas)]
        new_states = torch.stack([state for state, _ in results])
        similarities = torch.tensor([similarity for _, similarity in results], dtype=torch.float64)
        return new_states, similarities

    def _weighted_mean(self, states: torch.Tensor, weights: torch.Tensor) -> torch.Tensor:
        m, _ = to_gaussian(states, weights)
        return m

    def _max_weight_state(self, states: torch.Tensor, weights: torch.Tensor) -> torch.Tensor:
        return states[int(torch.argmax(weights))].clone()

    def _mean_of_corners(self, states: torch.Tensor, weights: torch.Tensor) -> torch.Tensor:
        corners = torch.stack([self.ssm.corners_from_state(state) for state in states])
        mean_corners = torch.sum(weights.view(-1, 1, 1) * corners, dim=0)
        return self.ssm.state_from_corners(mean_corners)

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
