import pytest
import torch

from pftrack import (
    ResamplingType, RandomVariateSource, LinearMultinomialResampler,
    BinaryMultinomialResampler, ResidualResampler, load_resampler
)

RESAMPLERS = [LinearMultinomialResampler, BinaryMultinomialResampler, ResidualResampler]

@pytest.mark.parametrize('resampler_class', RESAMPLERS)
@pytest.mark.parametrize('k', [0, 6, 19])
def test_concentrated_weight_gives_n_copies(resampler_class, k):
    weights = torch.zeros(20, dtype=torch.float64)
    weights[k] = 1.0
    ids = resampler_class().resample(weights, RandomVariateSource(3))
    assert ids.shape == (20,)
    assert (ids == k).all()

def test_linear_and_binary_select_the_same_indices():
    generator = torch.Generator().manual_seed(11)
    weights = torch.rand(50, generator=generator, dtype=torch.float64)
    weights[[3, 17, 18]] = 0.0
    weights /= weights.sum()
    cum_weights = torch.cumsum(weights, dim=0)
    uniforms = torch.rand(500, generator=generator, dtype=torch.float64)
    # variates sitting exactly on the table and at its ends
    uniforms = torch.cat([uniforms, cum_weights[:10], torch.tensor([0.0, 1.0 - 1e-12], dtype=torch.float64)])

    linear_ids = LinearMultinomialResampler().select(cum_weights, uniforms)
    binary_ids = BinaryMultinomialResampler().select(cum_weights, uniforms)
    assert torch.equal(linear_ids, binary_ids)
    # zero weight particles are never picked
    assert not torch.isin(linear_ids, torch.tensor([3, 17, 18])).any()

def test_linear_and_binary_resample_identically_with_same_seed():
    weights = torch.softmax(torch.linspace(-3, 3, 40, dtype=torch.float64), dim=0)
    linear_ids = LinearMultinomialResampler().resample(weights, RandomVariateSource(5))
    binary_ids = BinaryMultinomialResampler().resample(weights, RandomVariateSource(5))
    assert torch.equal(linear_ids, binary_ids)

def test_residual_keeps_deterministic_floor():
    generator = torch.Generator().manual_seed(2)
    n_particles = 30
    weights = torch.rand(n_particles, generator=generator, dtype=torch.float64) ** 4
    weights /= weights.sum()
    ids = ResidualResampler().resample(weights, RandomVariateSource(0))
    assert ids.shape == (n_particles,)
    counts = torch.bincount(ids, minlength=n_particles)
    assert (counts >= torch.floor(n_particles * weights).to(torch.long)).all()

def test_residual_with_uniform_weights_keeps_everyone():
    weights = torch.full((64,), 1.0 / 64, dtype=torch.float64)
    ids = ResidualResampler().resample(weights, RandomVariateSource(0))
    assert torch.equal(torch.sort(ids).values, torch.arange(64))

def test_multinomial_with_uniform_weights_is_a_uniform_draw():
    n_particles = 2000
    weights = torch.full((n_particles,), 1.0 / n_particles, dtype=torch.float64)
    ids = BinaryMultinomialResampler().resample(weights, RandomVariateSource(1))
    # about 1 - 1/e of the particles survive a uniform multinomial draw
    unique_fraction = torch.unique(ids).numel() / n_particles
    assert abs(unique_fraction - 0.632) < 0.05
    assert abs(float(ids.to(torch.float64).mean()) - (n_particles - 1) / 2) < 0.05 * n_particles

def test_load_resampler():
    assert load_resampler(ResamplingType.NONE) is None
    assert isinstance(load_resampler(ResamplingType.RESIDUAL), ResidualResampler)
    assert isinstance(load_resampler(ResamplingType.LINEAR_MULTINOMIAL), LinearMultinomialResampler)

@pytest.mark.parametrize('resampler_class', [LinearMultinomialResampler, BinaryMultinomialResampler])
def test_multinomial_searches_the_given_table(resampler_class):
    weights = torch.full((5,), 0.2, dtype=torch.float64)
    # a table that puts all the mass on particle 2
    cum_weights = torch.tensor([0.0, 0.0, 1.0, 1.0, 1.0], dtype=torch.float64)
    ids = resampler_class().resample(weights, RandomVariateSource(0), cum_weights)
    assert (ids == 2).all()
