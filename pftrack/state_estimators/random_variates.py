import torch

class RandomVariateSource:
    '''
    Seeded source of Gaussian, uniform and categorical variates.
    All draws of a filter go through one generator so a run is reproducible.
    '''
    def __init__(self, seed: int = 0, dtype = torch.float64):
        self.seed = seed
        self.dtype = dtype
        self.generator = torch.Generator()
        self.generator.manual_seed(seed)

    def normal(self, *size: int) -> torch.Tensor:
        return torch.randn(*size, generator=self.generator, dtype=self.dtype)

    def uniform(self, *size: int) -> torch.Tensor:
        '''Variates in [0, 1).'''
        return torch.rand(*size, generator=self.generator, dtype=self.dtype)

    def categorical(self, probs: torch.Tensor, num_samples: int) -> torch.Tensor:
        '''`num_samples` indices drawn with replacement from (unnormalized) `probs`.'''
        return torch.multinomial(
            probs, 
            num_samples=num_samples, 
            replacement=True, 
            generator=self.generator
        )
