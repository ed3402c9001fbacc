import math
import pytest
import torch

from pftrack import DegeneracyWarning, LikelihoodEvaluator, LikelihoodFunc, ConfigurationError

@pytest.fixture
def evaluator(translation_ssm, make_quadratic_am):
    evaluator = LikelihoodEvaluator(
        appearance_model = make_quadratic_am(),
        ssm = translation_ssm,
        measurement_sigma = 0.5
    )
    evaluator.initialize(translation_ssm.identity_state())
    return evaluator

def test_initialize_sets_reference_and_bound(evaluator):
    assert evaluator.max_similarity == 0.0
    assert torch.allclose(evaluator.appearance_model.reference, torch.zeros(2, dtype=torch.float64), atol=1e-4)

def test_score_is_similarity_at_state(evaluator):
    state = torch.tensor([3.0, 2.0], dtype=torch.float64)
    assert evaluator.score(state) == pytest.approx(-4.0, abs=1e-3)

def test_gaussian_likelihood_of_best_possible_particle_is_one(evaluator):
    similarities = torch.tensor([0.0, -0.5, -2.0], dtype=torch.float64)
    likelihoods = evaluator.likelihoods(similarities)
    assert float(likelihoods[0]) == 1.0
    assert float(likelihoods[1]) == pytest.approx(math.exp(-0.5 / (2 * 0.25)))

def test_reciprocal_likelihood(translation_ssm, make_quadratic_am):
    evaluator = LikelihoodEvaluator(
        make_quadratic_am(), translation_ssm, 1.0, LikelihoodFunc.RECIPROCAL
    )
    evaluator.initialize(translation_ssm.identity_state())
    likelihoods = evaluator.likelihoods(torch.tensor([0.0, -1.0, -3.0], dtype=torch.float64))
    assert likelihoods.tolist() == pytest.approx([1.0, 0.5, 0.25])

def test_weights_sum_to_one(evaluator):
    generator = torch.Generator().manual_seed(4)
    similarities = -10.0 * torch.rand(250, generator=generator, dtype=torch.float64)
    weights = evaluator.weights(similarities)
    assert abs(float(weights.sum()) - 1.0) < 1e-9
    assert int(torch.argmax(weights)) == int(torch.argmax(similarities))

def test_equal_similarities_give_uniform_weights(evaluator):
    weights = evaluator.weights(torch.full((8,), -3.0, dtype=torch.float64))
    assert torch.allclose(weights, torch.full((8,), 1.0 / 8, dtype=torch.float64))

def test_collapsed_likelihoods_become_uniform(evaluator):
    with pytest.warns(DegeneracyWarning):
        weights = evaluator.weights(torch.full((5,), -1e6, dtype=torch.float64))
    assert torch.equal(weights, torch.full((5,), 0.2, dtype=torch.float64))

def test_non_finite_likelihoods_become_uniform():
    with pytest.warns(DegeneracyWarning):
        weights = LikelihoodEvaluator.normalize(torch.tensor([float('nan'), 1.0], dtype=torch.float64))
    assert weights.tolist() == [0.5, 0.5]

def test_bound_is_raised_only_after_the_pass(evaluator):
    similarities = torch.tensor([1.0, 0.0], dtype=torch.float64)
    weights = evaluator.weights(similarities)
    # scored against the old bound of 0
    expected = torch.exp(similarities * 2.0)
    assert torch.allclose(weights, expected / expected.sum())
    assert evaluator.max_similarity == 1.0

def test_invalid_sigma(translation_ssm, make_quadratic_am):
    with pytest.raises(ConfigurationError):
        LikelihoodEvaluator(make_quadratic_am(), translation_ssm, 0.0)
