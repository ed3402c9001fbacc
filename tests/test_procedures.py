import math
import cv2
import numpy as np
import pytest
from omegaconf import OmegaConf

from procedures import Procedure

FILTER = {
    'n_particles': 100,
    'dynamic_model': 'RANDOM_WALK',
    'measurement_sigma': 2.0,
    'ssm_sigma': [[1.0], [3.0]],
    'adaptive_mixture': True,
    'seed': '${seed}',
}

def test_unknown_procedure():
    with pytest.raises(ValueError):
        Procedure.load('calibrate', OmegaConf.create({}))

def test_synthetic():
    config = OmegaConf.create({
        'seed': 0,
        'image_size': [120, 160],
        'target_size': 32,
        'init_corners': [[60.0, 40.0], [92.0, 40.0], [92.0, 72.0], [60.0, 72.0]],
        'n_frames': 5,
        'step': 0.5,
        'ssm': {'name': 'translation', 'resx': 10, 'resy': 10},
        'am': {'name': 'ssd'},
        'filter': FILTER,
    })
    errors = Procedure.load('synthetic', config)()
    assert len(errors) == 5
    assert errors[0] == pytest.approx(0.0, abs=1e-6)
    assert all(math.isfinite(e) for e in errors)
    assert max(errors) < 5.0

def test_track_sequence(tmp_path, textured_image):
    video_path = str(tmp_path / 'sequence.avi')
    writer = cv2.VideoWriter(video_path, cv2.VideoWriter_fourcc(*'MJPG'), 10, (320, 240))
    if not writer.isOpened():
        pytest.skip('No video writer backend available.')
    for t in range(4):
        frame = np.roll(textured_image, t, axis=1)
        writer.write(cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR))
    writer.release()

    output_file = str(tmp_path / 'out' / 'corners.npy')
    config = OmegaConf.create({
        'seed': 0,
        'input_file': video_path,
        'output_file': output_file,
        'init_corners': [[100.0, 80.0], [160.0, 80.0], [160.0, 140.0], [100.0, 140.0]],
        'n_frames': 3,
        'ssm': {'name': 'corner_homography', 'resx': 10, 'resy': 10},
        'am': {'name': 'ncc'},
        'filter': {
            'n_particles': 50,
            'measurement_sigma': 0.1,
            'update_type': 'COMPOSITIONAL',
            'mean_type': 'CORNERS',
            'pix_sigma': [1.0],
            'n_threads': 2,
            'seed': '${seed}',
        },
    })
    Procedure.load('track_sequence', config)()

    corners = np.load(output_file)
    assert corners.shape == (3, 4, 2)
    assert np.allclose(corners[0], OmegaConf.to_container(config.init_corners))
    assert np.all(np.isfinite(corners))
