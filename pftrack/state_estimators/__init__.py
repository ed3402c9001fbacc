from .random_variates import RandomVariateSource
from .distributions import DistributionMixture, ProposalDistribution, allocate_particles
from .particle_set import ParticleSet
from .resampling import (
    Resampler, LinearMultinomialResampler, BinaryMultinomialResampler, 
    ResidualResampler, load_resampler
)
from .likelihood import LikelihoodEvaluator
from .particle_filter import ParticleFilter, TrackerState
