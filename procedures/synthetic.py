import cv2
import numpy as np
import torch
from omegaconf import OmegaConf
from tqdm import tqdm

from procedures.procedure import Procedure, register
from pftrack import Logger

@register('synthetic')
class Synthetic(Procedure):
    '''
    Tracks a textured square pasted onto a static background and moved
    along a known path; reports the alignment error (mean corner distance).
    '''
    def _texture(self, rng: np.random.Generator, size: int) -> np.ndarray:
        noise = rng.random((size // 8, size // 8)).astype(np.float32)
        texture = cv2.resize(noise, (size, size), interpolation=cv2.INTER_CUBIC)
        texture = cv2.GaussianBlur(texture, (5, 5), 1.0)
        return np.clip(texture * 255.0, 0, 255).astype(np.uint8)

    def _render(
        self, 
        background: np.ndarray, 
        target: np.ndarray, 
        corners: np.ndarray
    ) -> np.ndarray:
        size = target.shape[0]
        source = np.array([[0, 0], [size - 1, 0], [size - 1, size - 1], [0, size - 1]], dtype=np.float32)
        H = cv2.getPerspectiveTransform(source, corners.astype(np.float32))
        shape = (background.shape[1], background.shape[0])
        warped = cv2.warpPerspective(target, H, shape)
        mask = cv2.warpPerspective(np.ones_like(target), H, shape)
        frame = background.copy()
        frame[mask > 0] = warped[mask > 0]
        return frame

    def _path(self, init_corners: np.ndarray, n_frames: int, step: float) -> list:
        '''Corners of the target in every frame: a slow circular drift.'''
        path = []
        for t in range(n_frames):
            angle = 2.0 * np.pi * t / max(n_frames, 1)
            offset = step * t * np.array([np.cos(angle), np.sin(angle)])
            path.append(init_corners + offset)
        return path

    def __call__(self):
        config = self.config
        rng = np.random.default_rng(config.seed)
        height, width = OmegaConf.to_container(config.image_size)
        background = self._texture(rng, max(height, width))[:height, :width]
        target = self._texture(rng, config.target_size)
        init_corners = np.array(OmegaConf.to_container(config.init_corners), dtype=np.float64)
        path = self._path(init_corners, config.n_frames, config.step)

        appearance_model, ssm = self._initialize_models()
        tracker = self._initialize_filter(appearance_model, ssm)

        errors = []
        with tracker:
            for t, true_corners in tqdm(enumerate(path), total=len(path)):
                frame = self._render(background, target, true_corners)
                if t == 0:
                    corners = tracker.initialize(true_corners, frame)
                else:
                    corners = tracker.update(frame)
                error = float(torch.linalg.norm(corners - torch.from_numpy(true_corners), dim=1).mean())
                errors.append(error)
                Logger.log_metrics({'alignment_error': error})

        Logger.info(f'Mean alignment error over {len(errors)} frames: {np.mean(errors):.3f} px.')
        return errors
