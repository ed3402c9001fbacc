import torch

from ..errors import PreconditionViolation
from ..params import DynamicModel

class ParticleSet:
    '''
    Two same-sized generations of particles. Each particle has a state, an
    autoregressive delta (its last realized perturbation) and the id of the
    distribution that generated it. `curr_set_id` selects the active
    generation; resampling writes into the other one and flips it.
    '''
    def __init__(self, n_particles: int, state_size: int):
        self.n_particles = n_particles
        self.state_size = state_size
        self.states = torch.zeros(2, n_particles, state_size, dtype=torch.float64)
        self.ar = torch.zeros(2, n_particles, state_size, dtype=torch.float64)
        self.distr_ids = torch.zeros(2, n_particles, dtype=torch.long)
        self.curr_set_id = 0
        self.weights = torch.full((n_particles,), 1.0 / n_particles, dtype=torch.float64)
        self.cum_weights = torch.cumsum(self.weights, dim=0)

    @property
    def curr_states(self) -> torch.Tensor:
        return self.states[self.curr_set_id]

    @property
    def curr_ar(self) -> torch.Tensor:
        return self.ar[self.curr_set_id]

    @property
    def curr_distr_ids(self) -> torch.Tensor:
        return self.distr_ids[self.curr_set_id]

    def initialize(self, initial_state: torch.Tensor, distr_ids: torch.Tensor) -> None:
        '''Puts every particle at `initial_state` with no update history.'''
        initial_state = torch.as_tensor(initial_state, dtype=torch.float64)
        if initial_state.shape != (self.state_size,):
            raise PreconditionViolation(
                f'Initial state must have shape ({self.state_size},), got {tuple(initial_state.shape)}.'
            )
        if distr_ids.shape != (self.n_particles,):
            raise PreconditionViolation(
                f'Expected {self.n_particles} distribution ids, got {tuple(distr_ids.shape)}.'
            )
        self.curr_set_id = 0
        self.states[:] = initial_state
        self.ar.zero_()
        self.distr_ids[:] = distr_ids
        self.set_weights(torch.full((self.n_particles,), 1.0 / self.n_particles, dtype=torch.float64))

    def perturbations(
        self,
        noise: torch.Tensor,
        dynamic_model: DynamicModel,
        ar_factor: float
    ) -> torch.Tensor:
        '''
        State update of each particle for this frame: the Gaussian `noise`
        alone for a random walk, plus the damped previous update for a
        first order autoregressive model.
        '''
        if noise.shape != (self.n_particles, self.state_size):
            raise PreconditionViolation(f'Unexpected noise shape {tuple(noise.shape)}.')
        match dynamic_model:
            case DynamicModel.AUTO_REGRESSION1:
                return noise + ar_factor * self.curr_ar
            case _:
                return noise

    def commit(self, states: torch.Tensor, deltas: torch.Tensor) -> None:
        '''Stores the perturbed states and their realized updates in place.'''
        self.states[self.curr_set_id] = states
        self.ar[self.curr_set_id] = deltas

    def set_weights(self, weights: torch.Tensor) -> None:
        self.weights = weights
        self.cum_weights = torch.cumsum(weights, dim=0)

    def resample(self, ids: torch.Tensor) -> None:
        '''
        Copies the selected particles into the other generation and makes
        it the active one. Weights become uniform.
        '''
        if ids.shape != (self.n_particles,):
            raise PreconditionViolation(f'Expected {self.n_particles} resampled ids, got {tuple(ids.shape)}.')
        next_set_id = 1 - self.curr_set_id
        self.states[next_set_id] = self.states[self.curr_set_id][ids]
        self.ar[next_set_id] = self.ar[self.curr_set_id][ids]
        self.distr_ids[next_set_id] = self.distr_ids[self.curr_set_id][ids]
        self.curr_set_id = next_set_id
        self.set_weights(torch.full((self.n_particles,), 1.0 / self.n_particles, dtype=torch.float64))

    def assign_distributions(self, distr_ids: torch.Tensor) -> None:
        self.distr_ids[self.curr_set_id] = distr_ids
