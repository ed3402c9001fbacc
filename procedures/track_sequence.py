import cv2
import numpy as np
import os
from omegaconf import OmegaConf
from tqdm import tqdm

from procedures.procedure import Procedure, register
from pftrack import Logger

@register('track_sequence')
class TrackSequence(Procedure):
    '''
    Tracks a planar region through a video, starting from the corners
    given in the config on the first frame. Saves a (T, 4, 2) array of
    corners, one per frame.
    '''
    def _frames(self, video_path: str):
        capture = cv2.VideoCapture(video_path)
        if not capture.isOpened():
            raise FileNotFoundError(f'Could not open video {video_path}.')
        try:
            while True:
                ret, frame = capture.read()
                if not ret: break
                yield frame
        finally:
            capture.release()

    def __call__(self):
        config = self.config
        appearance_model, ssm = self._initialize_models()
        tracker = self._initialize_filter(appearance_model, ssm)

        all_corners = []
        n_frames = config.get('n_frames', None)
        with tracker:
            for t, frame in tqdm(enumerate(self._frames(config.input_file))):
                if n_frames is not None and t >= n_frames: break
                if t == 0:
                    init_corners = np.array(OmegaConf.to_container(config.init_corners), dtype=np.float64)
                    corners = tracker.initialize(init_corners, frame)
                else:
                    corners = tracker.update(frame)
                all_corners.append(corners.numpy())

        if not all_corners:
            Logger.warning(f'No frames read from {config.input_file}.')
            return
        output_dir = os.path.dirname(config.output_file)
        if output_dir: os.makedirs(output_dir, exist_ok=True)
        np.save(config.output_file, np.stack(all_corners))
        Logger.info(f'Tracked {len(all_corners)} frames. Corners saved to {config.output_file}.')
