"""Shared fixtures: a stand-in scVelo backend that records calls."""

import sys
from pathlib import Path
from types import SimpleNamespace

import numpy as np
import pandas as pd
import pytest
from scipy import sparse

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))


def _dense(X):
    return X.toarray() if sparse.issparse(X) else np.asarray(X, dtype=float)


class FakeScvelo:
    """
    Mimics the parts of scvelo used by the pipeline.

    Each function records (name, dataset keyword, options) and writes a
    small annotation so later steps and the result tables can be checked.
    """

    def __init__(self, fail_on=None):
        self.fail_on = fail_on
        self.calls = []
        self.settings = SimpleNamespace(verbosity=None)
        self.pp = SimpleNamespace(
            filter_and_normalize=self._wrap('filter_and_normalize', self._filter_and_normalize),
            moments=self._wrap('moments', self._moments),
        )
        self.tl = SimpleNamespace(
            recover_dynamics=self._wrap('recover_dynamics', self._recover_dynamics),
            velocity=self._wrap('velocity', self._velocity),
            velocity_graph=self._wrap('velocity_graph', self._velocity_graph),
            velocity_pseudotime=self._wrap('velocity_pseudotime', self._velocity_pseudotime),
            latent_time=self._wrap('latent_time', self._latent_time),
            velocity_confidence=self._wrap('velocity_confidence', self._velocity_confidence),
        )

    @property
    def names(self):
        return [name for name, _, _ in self.calls]

    def kwargs_for(self, name):
        for call_name, _, kwargs in self.calls:
            if call_name == name:
                return kwargs
        raise KeyError(name)

    def _wrap(self, name, fn):
        def step(data=None, adata=None, **kwargs):
            self.calls.append((name, 'adata' if adata is not None else 'data', kwargs))
            if self.fail_on == name:
                raise ValueError(f"{name} failed")
            fn(data if data is not None else adata, **kwargs)
        return step

    def _filter_and_normalize(self, adata, **kwargs):
        adata.obs['initial_size'] = _dense(adata.layers['spliced']).sum(axis=1)

    def _moments(self, adata, **kwargs):
        adata.layers['Ms'] = _dense(adata.layers['spliced'])
        adata.layers['Mu'] = _dense(adata.layers['unspliced'])

    def _recover_dynamics(self, adata, **kwargs):
        adata.var['fit_alpha'] = np.ones(adata.n_vars)

    def _velocity(self, adata, mode='stochastic', **kwargs):
        adata.layers['velocity'] = adata.layers['Mu'] - 0.5 * adata.layers['Ms']
        adata.var['velocity_genes'] = np.ones(adata.n_vars, dtype=bool)
        adata.uns['velocity_params'] = {'mode': mode}

    def _velocity_graph(self, adata, **kwargs):
        adata.uns['velocity_graph'] = sparse.identity(adata.n_obs, format='csr')

    def _velocity_pseudotime(self, adata, **kwargs):
        adata.obs['velocity_pseudotime'] = np.linspace(0, 1, adata.n_obs)

    def _latent_time(self, adata, **kwargs):
        adata.obs['latent_time'] = np.linspace(0, 1, adata.n_obs)

    def _velocity_confidence(self, adata, **kwargs):
        V = adata.layers['velocity']
        adata.obs['velocity_length'] = np.linalg.norm(V, axis=1)
        adata.obs['velocity_confidence'] = np.full(adata.n_obs, 0.5)


@pytest.fixture
def fake_scv():
    return FakeScvelo()


@pytest.fixture
def make_fake_scv():
    return FakeScvelo


@pytest.fixture
def counts():
    """Small labelled genes x cells spliced/unspliced tables."""
    rng = np.random.default_rng(0)
    genes = [f'Gene_{i}' for i in range(8)]
    cells = [f'Cell_{i}' for i in range(12)]
    spliced = pd.DataFrame(rng.poisson(5, size=(8, 12)).astype(float), index=genes, columns=cells)
    unspliced = pd.DataFrame(rng.poisson(2, size=(8, 12)).astype(float), index=genes, columns=cells)
    return spliced, unspliced
