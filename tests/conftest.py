import cv2
import numpy as np
import pytest
import torch

from pftrack import (
    AppearanceModel, TranslationSSM, ParticleFilterParams,
    DynamicModel, ResamplingType, MeanType
)

class QuadraticAppearanceModel(AppearanceModel):
    '''
    Stand-in appearance model whose "patch" is the offset of the sampling
    points' centroid from `origin`. Similarity is -|offset - target|^2, so
    it peaks (at 0) when the region sits at `target`.
    '''
    def __init__(self, target, origin):
        super().__init__()
        self.target = torch.tensor(target, dtype=torch.float64)
        self.origin = torch.tensor(origin, dtype=torch.float64)

    def extract_patch(self, points: torch.Tensor) -> torch.Tensor:
        return points.mean(dim=0) - self.origin

    def similarity(self, patch: torch.Tensor, other: torch.Tensor) -> float:
        return -float(torch.sum((patch - self.target) ** 2))

    def self_similarity(self) -> float:
        return 0.0


@pytest.fixture
def square_corners() -> np.ndarray:
    return np.array([[0.0, 0.0], [10.0, 0.0], [10.0, 10.0], [0.0, 10.0]])

@pytest.fixture
def translation_ssm(square_corners) -> TranslationSSM:
    ssm = TranslationSSM(resx=5, resy=5)
    ssm.initialize(square_corners)
    return ssm

@pytest.fixture
def make_quadratic_am():
    def make(target=(3.0, 4.0)):
        # the centroid of the square's sampling grid
        return QuadraticAppearanceModel(target=target, origin=(5.0, 5.0))
    return make

@pytest.fixture
def make_params():
    def make(**kwargs):
        defaults = dict(
            n_particles = 100,
            ssm_sigma = [[1.0, 1.0]],
            ssm_mean = [[0.0, 0.0]],
            dynamic_model = DynamicModel.RANDOM_WALK,
            resampling_type = ResamplingType.RESIDUAL,
            mean_type = MeanType.WEIGHTED,
            measurement_sigma = 1.0,
            seed = 0
        )
        defaults.update(kwargs)
        return ParticleFilterParams(**defaults)
    return make

@pytest.fixture
def textured_image() -> np.ndarray:
    rng = np.random.default_rng(7)
    noise = rng.random((30, 40)).astype(np.float32)
    image = cv2.resize(noise, (320, 240), interpolation=cv2.INTER_CUBIC)
    return np.clip(image * 255.0, 0, 255).astype(np.uint8)
