"""
scvelor
Run the scVelo RNA velocity pipeline in a pinned, isolated environment
"""

__version__ = "0.1.0"

from . import config
from . import params
from . import environment
from . import context
from . import worker
from . import pipeline
from . import ingest

from .params import PipelineParams, VelocityMode
from .pipeline import scvelor, build_anndata
from .context import LocalContext, IsolatedContext, get_context

__all__ = [
    'config',
    'params',
    'environment',
    'context',
    'worker',
    'pipeline',
    'ingest',
    'PipelineParams',
    'VelocityMode',
    'scvelor',
    'build_anndata',
    'LocalContext',
    'IsolatedContext',
    'get_context',
]
