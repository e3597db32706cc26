"""Tests for the pipeline parameter bundle."""

import re

import pytest

from scvelor.params import (
    MISSING_MODE_MESSAGE,
    MomentsParams,
    PipelineParams,
    VelocityMode,
    VelocityParams,
)


STOCHASTIC_ORDER = [
    'filter_and_normalize',
    'moments',
    'velocity',
    'velocity_graph',
    'velocity_pseudotime',
    'velocity_confidence',
]

DYNAMICAL_ORDER = [
    'filter_and_normalize',
    'moments',
    'recover_dynamics',
    'velocity',
    'velocity_graph',
    'velocity_pseudotime',
    'latent_time',
    'velocity_confidence',
]


class TestVelocityMode:
    """Test the velocity model choice."""

    def test_values(self):
        assert [m.value for m in VelocityMode] == ['steady_state', 'stochastic', 'dynamical']

    def test_only_dynamical_is_dynamical(self):
        assert VelocityMode.DYNAMICAL.is_dynamical
        assert not VelocityMode.STOCHASTIC.is_dynamical
        assert not VelocityMode.STEADY_STATE.is_dynamical


class TestMissingMode:
    """The velocity mode is the one required option."""

    @pytest.mark.parametrize('params', [
        {},
        {'velocity': {}},
        {'velocity': {'mode': None}},
        {'moments': {'n_pcs': 10}, 'velocity': {'vkey': 'velocity'}},
        {'not_a_step': {}, 'velocity': {'bogus': 1}},
    ])
    def test_missing_mode_message(self, params):
        """Missing mode wins over any other problem in the bundle."""
        with pytest.raises(ValueError, match=re.escape(MISSING_MODE_MESSAGE)):
            PipelineParams.from_dict(params)

    def test_velocity_params_require_mode(self):
        with pytest.raises(ValueError, match=re.escape(MISSING_MODE_MESSAGE)):
            VelocityParams(mode=None)


class TestValidation:
    """Test option validation."""

    def test_unknown_mode(self):
        with pytest.raises(ValueError, match="Unknown velocity mode 'fast'"):
            PipelineParams.from_dict({'velocity': {'mode': 'fast'}})

    def test_unknown_step(self):
        with pytest.raises(ValueError, match="Unknown pipeline step"):
            PipelineParams.from_dict({'velocity': {'mode': 'stochastic'}, 'umap': {}})

    def test_unknown_option(self):
        with pytest.raises(ValueError, match="Unknown option\\(s\\) for 'moments': n_pc"):
            PipelineParams.from_dict({'velocity': {'mode': 'stochastic'},
                                      'moments': {'n_pc': 30}})

    def test_copy_not_accepted(self):
        """Steps must annotate the dataset in place."""
        with pytest.raises(ValueError, match="copy"):
            PipelineParams.from_dict({'velocity': {'mode': 'stochastic', 'copy': True}})

    def test_velocity_not_a_mapping(self):
        with pytest.raises(ValueError, match=r"params\['velocity'\] must be a mapping"):
            PipelineParams.from_dict({'velocity': 'dynamical'})

    def test_step_not_a_mapping(self):
        with pytest.raises(ValueError, match=r"params\['moments'\] must be a mapping.*list"):
            PipelineParams.from_dict({'velocity': {'mode': 'stochastic'}, 'moments': [30]})

    def test_params_not_a_mapping(self):
        with pytest.raises(ValueError, match="params must be a mapping"):
            PipelineParams.from_dict('dynamical')


class TestKwargs:
    """Test conversion of options to scVelo keyword arguments."""

    def test_unset_options_dropped(self):
        assert MomentsParams().to_kwargs() == {}
        assert MomentsParams(n_pcs=20).to_kwargs() == {'n_pcs': 20}

    def test_mode_forwarded_as_string(self):
        kwargs = VelocityParams(mode='dynamical', vkey='vel').to_kwargs()
        assert kwargs == {'mode': 'dynamical', 'vkey': 'vel'}
        assert type(kwargs['mode']) is str

    def test_from_dict_keeps_values(self):
        params = PipelineParams.from_dict({
            'velocity': {'mode': 'steady_state'},
            'filter_and_normalize': {'min_shared_counts': 20, 'counts_per_cell_after': 1e4},
        })
        assert params.mode is VelocityMode.STEADY_STATE
        assert params.filter_and_normalize.to_kwargs() == {'min_shared_counts': 20,
                                                           'counts_per_cell_after': 1e4}

    def test_normalization_and_progress_options(self):
        plan = PipelineParams.from_dict({
            'velocity': {'mode': 'dynamical'},
            'filter_and_normalize': {'counts_per_cell_after': 1e4, 'key_n_counts': 'n',
                                     'max_proportion_per_cell': 0.05,
                                     'use_initial_size': False, 'enforce': True},
            'recover_dynamics': {'show_progress_bar': False, 'plot_results': False},
            'velocity_graph': {'show_progress_bar': False},
        }).plan()
        kwargs = {step.name: step.kwargs for step in plan}
        assert kwargs['filter_and_normalize'] == {
            'counts_per_cell_after': 1e4, 'key_n_counts': 'n',
            'max_proportion_per_cell': 0.05, 'use_initial_size': False, 'enforce': True,
        }
        assert kwargs['recover_dynamics'] == {'plot_results': False, 'show_progress_bar': False}
        assert kwargs['velocity_graph'] == {'show_progress_bar': False}


class TestPlan:
    """Test the ordered step plan."""

    @pytest.mark.parametrize('mode', ['steady_state', 'stochastic'])
    def test_plan_without_dynamics(self, mode):
        plan = PipelineParams.from_dict({'velocity': {'mode': mode}}).plan()
        assert [step.name for step in plan] == STOCHASTIC_ORDER

    def test_plan_dynamical(self):
        plan = PipelineParams.from_dict({'velocity': {'mode': 'dynamical'}}).plan()
        assert [step.name for step in plan] == DYNAMICAL_ORDER

    def test_plan_modules_and_dataset_keyword(self):
        plan = PipelineParams.from_dict({'velocity': {'mode': 'dynamical'}}).plan()
        modules = {step.name: step.module for step in plan}
        assert modules['filter_and_normalize'] == 'pp'
        assert modules['moments'] == 'pp'
        assert all(modules[name] == 'tl' for name in DYNAMICAL_ORDER[2:])

        data_args = {step.name: step.data_arg for step in plan}
        assert data_args.pop('velocity_pseudotime') == 'adata'
        assert set(data_args.values()) == {'data'}

    def test_plan_carries_options(self):
        plan = PipelineParams.from_dict({
            'velocity': {'mode': 'dynamical'},
            'recover_dynamics': {'n_jobs': 4},
        }).plan()
        kwargs = {step.name: step.kwargs for step in plan}
        assert kwargs['recover_dynamics'] == {'n_jobs': 4}
        assert kwargs['velocity'] == {'mode': 'dynamical'}
        assert kwargs['latent_time'] == {}

    def test_dynamical_options_ignored_for_stochastic(self):
        plan = PipelineParams.from_dict({
            'velocity': {'mode': 'stochastic'},
            'recover_dynamics': {'n_jobs': 4},
        }).plan()
        assert 'recover_dynamics' not in [step.name for step in plan]


class TestCoerce:
    """Test accepted forms of the params argument."""

    def test_none_defaults_to_stochastic(self):
        assert PipelineParams.coerce(None).mode is VelocityMode.STOCHASTIC

    def test_instance_returned_unchanged(self):
        params = PipelineParams(velocity=VelocityParams(mode='dynamical'))
        assert PipelineParams.coerce(params) is params

    def test_mapping_parsed(self):
        params = PipelineParams.coerce({'velocity': {'mode': 'dynamical'}})
        assert params.mode is VelocityMode.DYNAMICAL


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
