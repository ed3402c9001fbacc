from abc import ABC, abstractmethod
import cv2
import numpy as np
import torch

from ..errors import CollaboratorError, ConfigurationError

class AppearanceModel(ABC):
    '''
    Extracts pixel values of the current image at a set of points and
    measures the similarity between two such patches. Higher is better.
    '''
    registry = {}
    def __init__(
        self, 
        pix_norm_mult: float = 1.0 / 255.0, 
        pix_norm_add: float = 0.0
    ):
        self.pix_norm_mult = pix_norm_mult
        self.pix_norm_add = pix_norm_add
        self.image = None
        self.reference = None

    def set_image(self, image: np.ndarray) -> None:
        if image is None or image.ndim not in {2, 3}:
            raise CollaboratorError("Image must be either grayscale or color.")
        if image.ndim == 3:
            image = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        self.image = image.astype(np.float32) * self.pix_norm_mult + self.pix_norm_add

    def extract_patch(self, points: torch.Tensor) -> torch.Tensor:
        '''Bilinearly interpolated pixel values at (n_pts, 2) points.'''
        if self.image is None:
            raise CollaboratorError('No image has been set.')
        pts = np.asarray(points, dtype=np.float32)
        if not np.all(np.isfinite(pts)):
            raise CollaboratorError('Cannot sample the image at non-finite points.')
        map_x = np.ascontiguousarray(pts[:, 0].reshape(1, -1))
        map_y = np.ascontiguousarray(pts[:, 1].reshape(1, -1))
        pix_vals = cv2.remap(
            self.image, 
            map_x, 
            map_y, 
            interpolation=cv2.INTER_LINEAR, 
            borderMode=cv2.BORDER_REPLICATE
        )
        return torch.from_numpy(pix_vals.reshape(-1).astype(np.float64))

    def set_reference(self, patch: torch.Tensor) -> None:
        self.reference = patch.clone()

    def self_similarity(self) -> float:
        if self.reference is None:
            raise CollaboratorError('No reference patch has been set.')
        return self.similarity(self.reference, self.reference)

    @abstractmethod
    def similarity(self, patch: torch.Tensor, other: torch.Tensor) -> float: ...


def register(name):
    def wrapper(subclass):
        AppearanceModel.registry[name] = subclass
        subclass.name = name
        return subclass
    return wrapper

def load_appearance_model(name: str, **kwargs) -> AppearanceModel:
    if name not in AppearanceModel.registry:
        raise ConfigurationError(f"Unknown appearance model: '{name}'.")
    return AppearanceModel.registry[name](**kwargs)


@register('ssd')
class SSD(AppearanceModel):
    '''Negative half sum of squared differences. Self-similarity is 0.'''
    def similarity(self, patch: torch.Tensor, other: torch.Tensor) -> float:
        return -0.5 * float(torch.sum((patch - other) ** 2))


@register('ncc')
class NCC(AppearanceModel):
    '''Zero mean normalized cross-correlation in [-1, 1].'''
    def similarity(self, patch: torch.Tensor, other: torch.Tensor) -> float:
        a = patch - patch.mean()
        b = other - other.mean()
        denom = float(torch.linalg.norm(a) * torch.linalg.norm(b))
        # flat patches carry no structure to correlate
        if denom == 0.0: return 0.0
        return float(torch.dot(a, b)) / denom
