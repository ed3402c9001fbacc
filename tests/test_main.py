from main import _get_run_name

def test_run_name_from_config_name():
    assert _get_run_name('default') == 'default'
    assert _get_run_name('experiments/track_sequence') == 'experiments.track_sequence'
