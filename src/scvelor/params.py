"""
Parameters Module

Typed options for each scVelo step and the bundle that drives the pipeline.
"""

from dataclasses import dataclass, field, fields, asdict
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .worker import Step


MISSING_MODE_MESSAGE = "The velocity mode must be specified (in params['velocity']['mode'])"


class VelocityMode(str, Enum):
    """Velocity estimation model."""
    STEADY_STATE = "steady_state"
    STOCHASTIC = "stochastic"
    DYNAMICAL = "dynamical"

    @property
    def is_dynamical(self) -> bool:
        """recover_dynamics and latent_time only run for the dynamical model."""
        return self is VelocityMode.DYNAMICAL


class StepParams:
    """
    Base class for the options of one scVelo function.

    Every field defaults to None, meaning scVelo's own default applies.
    """

    def to_kwargs(self) -> Dict[str, Any]:
        """Return only the options that were set."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def option_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def from_dict(cls, step: str, options: Optional[Mapping[str, Any]]):
        """
        Build the options of ``step`` from a plain mapping.

        Raises
        ------
        ValueError
            If the mapping holds options the step does not accept
        """
        if options is not None and not isinstance(options, Mapping):
            raise ValueError(
                f"params['{step}'] must be a mapping of option names to values, "
                f"got {type(options).__name__}"
            )
        options = dict(options or {})
        unknown = sorted(set(options) - set(cls.option_names()))
        if unknown:
            raise ValueError(
                f"Unknown option(s) for '{step}': {', '.join(unknown)}. "
                f"Accepted: {', '.join(cls.option_names())}"
            )
        return cls(**options)


@dataclass
class FilterAndNormalizeParams(StepParams):
    """Options of scv.pp.filter_and_normalize."""
    min_counts: Optional[int] = None
    min_counts_u: Optional[int] = None
    min_cells: Optional[int] = None
    min_cells_u: Optional[int] = None
    min_shared_counts: Optional[int] = None
    min_shared_cells: Optional[int] = None
    n_top_genes: Optional[int] = None
    retain_genes: Optional[Sequence[str]] = None
    subset_highly_variable: Optional[bool] = None
    flavor: Optional[str] = None
    log: Optional[bool] = None
    layers_normalize: Optional[Sequence[str]] = None
    # forwarded to scv.pp.normalize_per_cell
    counts_per_cell_after: Optional[float] = None
    counts_per_cell: Optional[Any] = None
    key_n_counts: Optional[str] = None
    max_proportion_per_cell: Optional[float] = None
    use_initial_size: Optional[bool] = None
    enforce: Optional[bool] = None


@dataclass
class MomentsParams(StepParams):
    """Options of scv.pp.moments."""
    n_neighbors: Optional[int] = None
    n_pcs: Optional[int] = None
    mode: Optional[str] = None
    method: Optional[str] = None
    use_rep: Optional[str] = None
    use_highly_variable: Optional[bool] = None


@dataclass
class RecoverDynamicsParams(StepParams):
    """Options of scv.tl.recover_dynamics."""
    var_names: Optional[Any] = None
    n_top_genes: Optional[int] = None
    max_iter: Optional[int] = None
    assignment_mode: Optional[str] = None
    t_max: Optional[float] = None
    fit_time: Optional[bool] = None
    fit_scaling: Optional[bool] = None
    fit_steady_states: Optional[bool] = None
    fit_connected_states: Optional[bool] = None
    fit_basal_transcription: Optional[bool] = None
    use_raw: Optional[bool] = None
    load_pars: Optional[bool] = None
    plot_results: Optional[bool] = None
    steady_state_prior: Optional[Sequence[bool]] = None
    add_key: Optional[str] = None
    n_jobs: Optional[int] = None
    backend: Optional[str] = None
    show_progress_bar: Optional[bool] = None


@dataclass
class VelocityParams(StepParams):
    """Options of scv.tl.velocity. ``mode`` is required."""
    mode: VelocityMode = VelocityMode.STOCHASTIC
    vkey: Optional[str] = None
    fit_offset: Optional[bool] = None
    fit_offset2: Optional[bool] = None
    filter_genes: Optional[bool] = None
    groups: Optional[Any] = None
    groupby: Optional[str] = None
    groups_for_fit: Optional[Any] = None
    constrain_ratio: Optional[Any] = None
    use_raw: Optional[bool] = None
    use_latent_time: Optional[bool] = None
    perc: Optional[Any] = None
    min_r2: Optional[float] = None
    min_likelihood: Optional[float] = None
    r2_adjusted: Optional[bool] = None
    use_highly_variable: Optional[bool] = None
    diff_kinetics: Optional[bool] = None

    def __post_init__(self):
        if self.mode is None:
            raise ValueError(MISSING_MODE_MESSAGE)
        try:
            self.mode = VelocityMode(self.mode)
        except ValueError:
            valid = ', '.join(m.value for m in VelocityMode)
            raise ValueError(f"Unknown velocity mode '{self.mode}'. Use one of: {valid}") from None

    def to_kwargs(self) -> Dict[str, Any]:
        kwargs = super().to_kwargs()
        kwargs['mode'] = self.mode.value
        return kwargs


@dataclass
class VelocityGraphParams(StepParams):
    """Options of scv.tl.velocity_graph."""
    vkey: Optional[str] = None
    xkey: Optional[str] = None
    tkey: Optional[str] = None
    basis: Optional[str] = None
    n_neighbors: Optional[int] = None
    n_recurse_neighbors: Optional[int] = None
    random_neighbors_at_max: Optional[int] = None
    sqrt_transform: Optional[bool] = None
    variance_stabilization: Optional[bool] = None
    gene_subset: Optional[Sequence[str]] = None
    compute_uncertainties: Optional[bool] = None
    approx: Optional[bool] = None
    mode_neighbors: Optional[str] = None
    n_jobs: Optional[int] = None
    backend: Optional[str] = None
    show_progress_bar: Optional[bool] = None


@dataclass
class VelocityPseudotimeParams(StepParams):
    """Options of scv.tl.velocity_pseudotime."""
    vkey: Optional[str] = None
    groupby: Optional[str] = None
    groups: Optional[Any] = None
    root_key: Optional[Any] = None
    end_key: Optional[Any] = None
    n_dcs: Optional[int] = None
    use_velocity_graph: Optional[bool] = None
    save_diffmap: Optional[bool] = None


@dataclass
class LatentTimeParams(StepParams):
    """Options of scv.tl.latent_time."""
    vkey: Optional[str] = None
    min_likelihood: Optional[float] = None
    min_confidence: Optional[float] = None
    min_corr_diffusion: Optional[float] = None
    weight_diffusion: Optional[float] = None
    root_key: Optional[Any] = None
    end_key: Optional[Any] = None
    t_max: Optional[float] = None


@dataclass
class VelocityConfidenceParams(StepParams):
    """Options of scv.tl.velocity_confidence."""
    vkey: Optional[str] = None


# step name -> (options class, scVelo submodule, keyword the dataset is passed as)
STEPS = {
    'filter_and_normalize': (FilterAndNormalizeParams, 'pp', 'data'),
    'moments': (MomentsParams, 'pp', 'data'),
    'recover_dynamics': (RecoverDynamicsParams, 'tl', 'data'),
    'velocity': (VelocityParams, 'tl', 'data'),
    'velocity_graph': (VelocityGraphParams, 'tl', 'data'),
    'velocity_pseudotime': (VelocityPseudotimeParams, 'tl', 'adata'),
    'latent_time': (LatentTimeParams, 'tl', 'data'),
    'velocity_confidence': (VelocityConfidenceParams, 'tl', 'data'),
}

DYNAMICAL_STEPS = ('recover_dynamics', 'latent_time')


@dataclass
class PipelineParams:
    """
    Options for every step of the scVelo pipeline.

    Examples
    --------
    >>> params = PipelineParams.from_dict({
    ...     'velocity': {'mode': 'dynamical'},
    ...     'recover_dynamics': {'n_jobs': 4},
    ... })
    >>> [step.name for step in params.plan()][:3]
    ['filter_and_normalize', 'moments', 'recover_dynamics']
    """
    velocity: VelocityParams = field(default_factory=VelocityParams)
    filter_and_normalize: FilterAndNormalizeParams = field(default_factory=FilterAndNormalizeParams)
    moments: MomentsParams = field(default_factory=MomentsParams)
    recover_dynamics: RecoverDynamicsParams = field(default_factory=RecoverDynamicsParams)
    velocity_graph: VelocityGraphParams = field(default_factory=VelocityGraphParams)
    velocity_pseudotime: VelocityPseudotimeParams = field(default_factory=VelocityPseudotimeParams)
    latent_time: LatentTimeParams = field(default_factory=LatentTimeParams)
    velocity_confidence: VelocityConfidenceParams = field(default_factory=VelocityConfidenceParams)

    @property
    def mode(self) -> VelocityMode:
        return self.velocity.mode

    @classmethod
    def from_dict(cls, params: Optional[Mapping[str, Mapping[str, Any]]]) -> 'PipelineParams':
        """
        Parse the nested ``{step: {option: value}}`` form.

        The velocity mode is checked before anything else.
        """
        if params is not None and not isinstance(params, Mapping):
            raise ValueError(f"params must be a mapping of step names to options, "
                             f"got {type(params).__name__}")
        params = dict(params or {})
        velocity = params.get('velocity') or {}
        if not isinstance(velocity, Mapping):
            raise ValueError(
                f"params['velocity'] must be a mapping of options, e.g. "
                f"{{'mode': 'stochastic'}}, got {type(velocity).__name__} {velocity!r}"
            )
        if velocity.get('mode') is None:
            raise ValueError(MISSING_MODE_MESSAGE)

        unknown = sorted(set(params) - set(STEPS))
        if unknown:
            raise ValueError(
                f"Unknown pipeline step(s): {', '.join(unknown)}. "
                f"Accepted: {', '.join(STEPS)}"
            )

        return cls(**{
            name: option_cls.from_dict(name, params.get(name))
            for name, (option_cls, _, _) in STEPS.items()
        })

    @classmethod
    def coerce(cls, params) -> 'PipelineParams':
        """Accept a PipelineParams, a nested mapping, or None (stochastic defaults)."""
        if isinstance(params, cls):
            return params
        if params is None:
            return cls.from_dict({'velocity': {'mode': VelocityMode.STOCHASTIC.value}})
        return cls.from_dict(params)

    def plan(self) -> List[Step]:
        """Ordered scVelo calls for this configuration."""
        plan = []
        for name, (_, module, data_arg) in STEPS.items():
            if name in DYNAMICAL_STEPS and not self.mode.is_dynamical:
                continue
            plan.append(Step(name, module, name, data_arg, getattr(self, name).to_kwargs()))
        return plan
