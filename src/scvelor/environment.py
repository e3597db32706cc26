"""
Environment Module

Declaration and provisioning of the version-pinned interpreter environment
that scVelo runs in.
"""

import os
import subprocess
import sys
import venv
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

from . import config


MARKER_FILE = 'scvelor-requirements.txt'


class ScveloEnvironment:
    """
    A virtual environment with pinned versions of scVelo and its stack.

    The environment is created under the cache directory the first time it
    is needed and reused afterwards. It is rebuilt when the recorded
    requirements no longer match the declaration.
    """

    def __init__(self,
                 name: str,
                 packages: Sequence[str],
                 pip: Sequence[str] = (),
                 python_range: Tuple[Tuple[int, int], Tuple[int, int]] = ((3, 9), (3, 14)),
                 cache_dir: Optional[Union[str, Path]] = None):
        """
        Parameters
        ----------
        name : str
            Directory name of the environment under ``cache_dir``
        packages : sequence of str
            Pinned requirements of the numeric stack, e.g. ``'numpy==1.26.4'``
        pip : sequence of str
            Pinned requirements installed after ``packages``
        python_range : tuple
            Interpreter versions the pins install on, ``(min, max)`` with
            ``max`` exclusive. Pins may carry environment markers, e.g.
            ``'numba==0.61.0; python_version >= "3.13"'``
        cache_dir : str or Path, optional
            Parent directory, defaults to ``config.CACHE_DIR``
        """
        self.name = name
        self.packages = list(packages)
        self.pip = list(pip)
        self.python_range = python_range
        self.cache_dir = Path(cache_dir) if cache_dir is not None else config.CACHE_DIR

    def __repr__(self):
        return f"ScveloEnvironment(name={self.name!r}, path='{self.path}')"

    @property
    def path(self) -> Path:
        return self.cache_dir / self.name

    @property
    def python(self) -> Path:
        """Interpreter of the environment."""
        if os.name == 'nt':
            return self.path / 'Scripts' / 'python.exe'
        return self.path / 'bin' / 'python'

    @property
    def requirements(self) -> List[str]:
        return self.packages + self.pip

    def is_provisioned(self) -> bool:
        marker = self.path / MARKER_FILE
        if not (self.python.exists() and marker.exists()):
            return False
        recorded = [line.strip() for line in marker.read_text().splitlines() if line.strip()]
        return recorded == self.requirements

    def supports(self, version: Optional[Tuple[int, int]] = None) -> bool:
        """Whether the pins install on ``version`` (default: this interpreter)."""
        version = tuple(version or sys.version_info[:2])
        low, high = self.python_range
        return tuple(low) <= version < tuple(high)

    def provision(self, verbose: bool = True) -> Path:
        """
        Create the environment if it is missing or out of date.

        Returns
        -------
        python : Path
            Interpreter of the environment

        Raises
        ------
        RuntimeError
            If the pins do not support this interpreter
        subprocess.CalledProcessError
            If pip fails to install the pinned requirements
        """
        if self.is_provisioned():
            return self.python

        if not self.supports():
            low, high = self.python_range
            raise RuntimeError(
                f"Environment '{self.name}' supports Python "
                f"{low[0]}.{low[1]} to <{high[0]}.{high[1]}, not "
                f"{sys.version_info[0]}.{sys.version_info[1]}. Use context='local' "
                f"with an installed scVelo instead."
            )

        if verbose:
            print(f"Provisioning environment '{self.name}' in {self.path}...")

        self.path.parent.mkdir(parents=True, exist_ok=True)
        venv.EnvBuilder(with_pip=True, clear=True).create(str(self.path))

        self._pip_install(self.packages, verbose)
        if self.pip:
            self._pip_install(self.pip, verbose)

        (self.path / MARKER_FILE).write_text('\n'.join(self.requirements) + '\n')

        if verbose:
            print(f"✓ Environment '{self.name}' ready")
        return self.python

    def _pip_install(self, requirements: Sequence[str], verbose: bool) -> None:
        cmd = [str(self.python), '-m', 'pip', 'install']
        if not verbose:
            cmd.append('--quiet')
        cmd.extend(requirements)
        if verbose:
            print(f"  Installing {len(requirements)} package(s)...")
        subprocess.run(cmd, check=True)


SCVELO_ENV = ScveloEnvironment(
    'scvelo',
    packages=[
        'numpy==1.26.4; python_version < "3.13"',
        'numpy==2.1.3; python_version >= "3.13"',
        'scipy==1.13.1; python_version < "3.13"',
        'scipy==1.14.1; python_version >= "3.13"',
        'numba==0.60.0; python_version < "3.13"',
        'numba==0.61.0; python_version >= "3.13"',
        'pandas==2.2.3',
        'matplotlib==3.9.4',
        'scikit-learn==1.5.2',
        'h5py==3.12.1',
        'anndata==0.10.9',
    ],
    pip=['scvelo==0.3.3'],
)


if __name__ == "__main__":
    python = SCVELO_ENV.provision()
    print(f"Interpreter: {python}")
    subprocess.run([str(python), '-c', 'import scvelo; print(scvelo.__version__)'], check=True)
