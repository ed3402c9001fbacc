from abc import ABC, abstractmethod
import numpy as np
import torch

from ..errors import ConfigurationError, PreconditionViolation
from ..math import unit_square_grid
from ..params import UpdateType
from ..view_transformer import ViewTransformer

UNIT_CORNERS = np.array(
    [[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0]], 
    dtype=np.float64
)

class StateSpaceModel(ABC):
    '''
    Maps a state vector to the sampling points and corners of the tracked
    region. Corners are (4, 2) rows of (x, y): top-left, top-right,
    bottom-right, bottom-left.

    Models are stateless once initialized, so any method except
    `initialize` may be called concurrently from worker threads.
    '''
    registry = {}
    def __init__(
        self, 
        resx: int = 50, 
        resy: int = 50, 
        grad_eps: float = 1e-2
    ):
        if resx < 2 or resy < 2:
            raise ConfigurationError(f'Invalid sampling resolution {resx}x{resy}.')
        self.resx = resx
        self.resy = resy
        self.n_pts = resx * resy
        self.grad_eps = grad_eps
        self.unit_grid = unit_square_grid(resx, resy).numpy()
        self.init_corners = None
        self.init_pts = None

    @property
    @abstractmethod
    def state_size(self) -> int: ...

    def initialize(self, corners) -> None:
        '''Sets the region that the zero state corresponds to.'''
        self.init_corners = self.validate_corners(corners)
        warp = ViewTransformer(UNIT_CORNERS, self.init_corners.numpy())
        self.init_pts = torch.from_numpy(warp.transform_points(self.unit_grid))

    @property
    def is_initialized(self) -> bool:
        return self.init_corners is not None

    @staticmethod
    def validate_corners(corners) -> torch.Tensor:
        corners = torch.as_tensor(np.asarray(corners, dtype=np.float64))
        if corners.shape == (2, 4):
            corners = corners.T.contiguous()
        if corners.shape != (4, 2):
            raise PreconditionViolation(f'Corners must have shape (4, 2), got {tuple(corners.shape)}.')
        if not torch.isfinite(corners).all():
            raise PreconditionViolation('Corners must be finite.')
        return corners

    def validate_state(self, state: torch.Tensor) -> torch.Tensor:
        if not self.is_initialized:
            raise PreconditionViolation(f'{type(self).__name__} used before initialize().')
        state = torch.as_tensor(state, dtype=torch.float64)
        if state.shape != (self.state_size,):
            raise PreconditionViolation(
                f'State must have shape ({self.state_size},), got {tuple(state.shape)}.'
            )
        return state

    def identity_state(self) -> torch.Tensor:
        return torch.zeros(self.state_size, dtype=torch.float64)

    @abstractmethod
    def points_from_state(self, state: torch.Tensor) -> torch.Tensor:
        '''Returns the (n_pts, 2) sampling points of `state`.'''

    @abstractmethod
    def corners_from_state(self, state: torch.Tensor) -> torch.Tensor: ...

    @abstractmethod
    def state_from_corners(self, corners) -> torch.Tensor: ...

    @abstractmethod
    def compose(self, state: torch.Tensor, delta: torch.Tensor) -> torch.Tensor:
        '''Warp of `state` composed with the warp of `delta` (delta applied first).'''

    def apply_update(
        self, 
        state: torch.Tensor, 
        delta: torch.Tensor, 
        update_type: UpdateType
    ) -> torch.Tensor:
        state = self.validate_state(state)
        delta = self.validate_state(delta)
        match update_type:
            case UpdateType.ADDITIVE:
                return state + delta
            case UpdateType.COMPOSITIONAL:
                return self.compose(state, delta)
            case _:
                raise ConfigurationError(f'Unknown update type: {update_type}.')

    def point_jacobian(self, state: torch.Tensor) -> torch.Tensor:
        '''
        (2 * n_pts, state_size) Jacobian of the flattened sampling points
        w.r.t. the state, by central differences.
        '''
        state = self.validate_state(state)
        jacobian = torch.empty(2 * self.n_pts, self.state_size, dtype=torch.float64)
        for j in range(self.state_size):
            offset = torch.zeros_like(state)
            offset[j] = self.grad_eps
            inc_pts = self.points_from_state(state + offset)
            dec_pts = self.points_from_state(state - offset)
            jacobian[:, j] = (inc_pts - dec_pts).reshape(-1) / (2 * self.grad_eps)
        return jacobian


def register(name):
    def wrapper(subclass):
        StateSpaceModel.registry[name] = subclass
        subclass.name = name
        return subclass
    return wrapper

def load_ssm(name: str, **kwargs) -> StateSpaceModel:
    if name not in StateSpaceModel.registry:
        raise ConfigurationError(f"Unknown state space model: '{name}'.")
    return StateSpaceModel.registry[name](**kwargs)


@register('translation')
class TranslationSSM(StateSpaceModel):
    '''
    2-DOF translation of the initial region. 
    Additive and compositional updates coincide.
    '''
    @property
    def state_size(self) -> int:
        return 2

    def points_from_state(self, state: torch.Tensor) -> torch.Tensor:
        state = self.validate_state(state)
        return self.init_pts + state

    def corners_from_state(self, state: torch.Tensor) -> torch.Tensor:
        state = self.validate_state(state)
        return self.init_corners + state

    def state_from_corners(self, corners) -> torch.Tensor:
        if not self.is_initialized:
            raise PreconditionViolation('TranslationSSM used before initialize().')
        corners = self.validate_corners(corners)
        return (corners - self.init_corners).mean(dim=0)

    def compose(self, state: torch.Tensor, delta: torch.Tensor) -> torch.Tensor:
        return state + delta


@register('corner_homography')
class CornerHomographySSM(StateSpaceModel):
    '''
    8-DOF homography parametrized by the displacements of the 4 corners
    from the initial corners: state = [dx0, dy0, dx1, dy1, dx2, dy2, dx3, dy3].
    '''
    @property
    def state_size(self) -> int:
        return 8

    def _warp(self, state: torch.Tensor) -> ViewTransformer:
        '''Homography taking the initial corners to the corners of `state`.'''
        corners = self.init_corners + state.view(4, 2)
        return ViewTransformer(self.init_corners.numpy(), corners.numpy())

    def points_from_state(self, state: torch.Tensor) -> torch.Tensor:
        state = self.validate_state(state)
        pts = self._warp(state).transform_points(self.init_pts.numpy())
        return torch.from_numpy(pts)

    def corners_from_state(self, state: torch.Tensor) -> torch.Tensor:
        state = self.validate_state(state)
        return self.init_corners + state.view(4, 2)

    def state_from_corners(self, corners) -> torch.Tensor:
        if not self.is_initialized:
            raise PreconditionViolation('CornerHomographySSM used before initialize().')
        corners = self.validate_corners(corners)
        return (corners - self.init_corners).reshape(-1)

    def compose(self, state: torch.Tensor, delta: torch.Tensor) -> torch.Tensor:
        warp = self._warp(state).compose(self._warp(delta))
        corners = warp.transform_points(self.init_corners.numpy())
        return torch.from_numpy(corners).reshape(-1) - self.init_corners.reshape(-1)
