import torch
from typing import Tuple

def unit_square_grid(resx: int, resy: int, dtype=torch.float64) -> torch.Tensor:
    '''
    Returns a (resy * resx, 2) grid of (x, y) points spanning [0, 1]^2, row major.
    '''
    xs = torch.linspace(0.0, 1.0, resx, dtype=dtype)
    ys = torch.linspace(0.0, 1.0, resy, dtype=dtype)
    grid_y, grid_x = torch.meshgrid(ys, xs, indexing='ij')
    return torch.stack([grid_x.reshape(-1), grid_y.reshape(-1)], dim=-1)

def to_gaussian(
    particles: torch.Tensor,
    weights: torch.Tensor | None = None
) -> Tuple[torch.Tensor, torch.Tensor]:
    '''
    Estimates Gaussian density given particles and corresponding weights.
    If weights are not provided, just uses particles.
    '''
    N, _ = particles.shape
    if weights is None:
        m = particles.mean(dim=0)
        residuals = particles - m
        P = (residuals.T @ residuals) / max(N - 1, 1)
    else:
        weighted_particles = particles * weights.view(-1, 1)
        m = weighted_particles.sum(dim=0)
        residuals = particles - m
        P = torch.sum(weights.view(-1, 1, 1) * (residuals.unsqueeze(-1) * residuals.unsqueeze(-2)), dim=0)
        
    return m, P

def effective_sample_size(weights: torch.Tensor) -> float:
    return float(1.0 / (torch.sum(weights ** 2) + 1e-12))
