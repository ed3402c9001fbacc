from abc import ABC, abstractmethod
from omegaconf import DictConfig

from pftrack import (
    Logger, ParticleFilter, ParticleFilterParams, 
    load_appearance_model, load_ssm
)


class Procedure(ABC):
    registry = {}
    def __init__(self, config: DictConfig):
        self.config = config

    @classmethod
    def load(cls, name, config: DictConfig):
        if name not in cls.registry:
            raise ValueError(f"Unknown procedure: '{name}'.")
        return cls.registry[name](config)

    @abstractmethod
    def __call__(self): ...

    def _initialize_models(self):
        config = self.config
        ssm = load_ssm(
            config.ssm.name,
            resx = config.ssm.resx,
            resy = config.ssm.resy
        )
        appearance_model = load_appearance_model(config.am.name)
        return appearance_model, ssm

    def _initialize_filter(self, appearance_model, ssm) -> ParticleFilter:
        params = ParticleFilterParams.from_config(self.config.filter)
        Logger.debug(self.config.filter)
        return ParticleFilter(appearance_model, ssm, params)

def register(name):
    def wrapper(subclass):
        Procedure.registry[name] = subclass
        return subclass
    return wrapper
