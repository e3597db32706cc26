"""
Configuration Module

Package-wide defaults, overridable through environment variables.
"""

import os
from pathlib import Path


# Where pinned environments are provisioned
CACHE_DIR = Path(os.environ.get('SCVELOR_CACHE_DIR',
                                Path.home() / '.cache' / 'scvelor'))

# 'isolated' runs scVelo in the pinned environment, 'local' in this interpreter
DEFAULT_BACKEND = os.environ.get('SCVELOR_BACKEND', 'isolated')

# scv.settings.verbosity used inside the worker
SCVELO_VERBOSITY = int(os.environ.get('SCVELOR_VERBOSITY', '1'))

# Files exchanged with the worker process
INPUT_FILE = 'input.h5ad'
PLAN_FILE = 'plan.pkl'
OUTPUT_FILE = 'output.h5ad'
ERROR_FILE = 'error.pkl'
