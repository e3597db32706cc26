"""
Execution Context Module

Where the scVelo steps run: in this interpreter, or in a separate process
using the pinned environment. Contexts are acquired with ``with`` and are
owned by a single pipeline call.
"""

import importlib
import pickle
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import List, Optional

import anndata as ad

from . import config
from . import worker
from .environment import ScveloEnvironment, SCVELO_ENV
from .worker import Step


class ExecutionContext:
    """Scoped handle on the interpreter that runs scVelo."""

    def __init__(self, verbose: bool = True):
        self.verbose = verbose
        self.active = False

    def start(self) -> None:
        self.active = True

    def stop(self) -> None:
        self.active = False

    def run(self, adata: ad.AnnData, plan: List[Step]) -> ad.AnnData:
        """Run the plan on ``adata`` and return the annotated dataset."""
        if not self.active:
            raise RuntimeError(f"{type(self).__name__} is not started")
        return self._run(adata, plan)

    def _run(self, adata: ad.AnnData, plan: List[Step]) -> ad.AnnData:
        raise NotImplementedError

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False


class LocalContext(ExecutionContext):
    """Run scVelo in the current interpreter."""

    def __init__(self, backend=None, verbose: bool = True):
        """
        Parameters
        ----------
        backend : module, optional
            scVelo module to call, imported on start when omitted
        verbose : bool
            Print progress messages
        """
        super().__init__(verbose=verbose)
        self._backend = backend
        self.scv = None
        self._saved_verbosity = None

    def start(self) -> None:
        self.scv = self._backend or importlib.import_module('scvelo')
        self._saved_verbosity = self.scv.settings.verbosity
        self.scv.settings.verbosity = config.SCVELO_VERBOSITY
        super().start()

    def stop(self) -> None:
        if self.scv is not None:
            self.scv.settings.verbosity = self._saved_verbosity
        self.scv = None
        super().stop()

    def _run(self, adata, plan):
        return worker.run_steps(adata, plan, self.scv, verbose=self.verbose)


class IsolatedContext(ExecutionContext):
    """
    Run scVelo in a subprocess using the interpreter of a pinned environment.

    The dataset and the plan are written to a private working directory,
    the worker script runs there and the annotated dataset is read back.
    A failure inside the worker is re-raised here as the original
    exception when it can be unpickled.
    """

    def __init__(self, environment: ScveloEnvironment = SCVELO_ENV,
                 verbose: bool = True):
        super().__init__(verbose=verbose)
        self.environment = environment
        self.python: Optional[Path] = None
        self.workdir: Optional[Path] = None

    def start(self) -> None:
        self.python = self.environment.provision(verbose=self.verbose)
        self.workdir = Path(tempfile.mkdtemp(prefix='scvelor-'))
        super().start()

    def stop(self) -> None:
        if self.workdir is not None:
            shutil.rmtree(self.workdir, ignore_errors=True)
            self.workdir = None
        super().stop()

    def command(self) -> List[str]:
        """Command line that runs the worker script in the environment."""
        return [
            str(self.python),
            worker.__file__,
            str(self.workdir / config.INPUT_FILE),
            str(self.workdir / config.PLAN_FILE),
            str(self.workdir / config.OUTPUT_FILE),
            str(self.workdir / config.ERROR_FILE),
            str(config.SCVELO_VERBOSITY if self.verbose else 0),
        ]

    def _run(self, adata, plan):
        adata.write_h5ad(self.workdir / config.INPUT_FILE)
        with open(self.workdir / config.PLAN_FILE, 'wb') as fh:
            pickle.dump([tuple(step) for step in plan], fh)

        proc = subprocess.run(self.command())

        error_path = self.workdir / config.ERROR_FILE
        if error_path.exists():
            raise_worker_error(error_path)
        if proc.returncode != 0:
            raise subprocess.CalledProcessError(proc.returncode, proc.args)

        return ad.read_h5ad(self.workdir / config.OUTPUT_FILE)


class RemoteTraceback(Exception):
    """Traceback text of a failure inside the worker process."""

    def __init__(self, tb: str):
        super().__init__(tb)
        self.tb = tb

    def __str__(self):
        return self.tb


def raise_worker_error(path: Path) -> None:
    """
    Re-raise the exception recorded by the worker.

    The worker-side traceback is attached as ``__cause__``.
    """
    with open(path, 'rb') as fh:
        report = pickle.load(fh)

    exc = None
    if report['exception'] is not None:
        try:
            exc = pickle.loads(report['exception'])
        except (ImportError, AttributeError, TypeError):
            # Exception class only exists inside the environment
            exc = None

    if isinstance(exc, BaseException):
        raise exc from RemoteTraceback(report['traceback'])
    raise RuntimeError(f"scVelo worker failed:\n{report['traceback']}")


def get_context(name: Optional[str] = None, verbose: bool = True, **kwargs) -> ExecutionContext:
    """
    Create an execution context by name.

    Parameters
    ----------
    name : str, optional
        'local' or 'isolated', defaults to ``config.DEFAULT_BACKEND``
    """
    name = name or config.DEFAULT_BACKEND
    if name == 'local':
        return LocalContext(verbose=verbose, **kwargs)
    elif name == 'isolated':
        return IsolatedContext(verbose=verbose, **kwargs)
    else:
        raise ValueError(f"Unknown execution context: {name}")
