"""
Pipeline Module

Wrapper for running the scVelo pipeline on spliced and unspliced counts.

The following scVelo functions run, in order, after the AnnData object is
created:

* pp.filter_and_normalize
* pp.moments
* tl.recover_dynamics (dynamical model only)
* tl.velocity
* tl.velocity_graph
* tl.velocity_pseudotime
* tl.latent_time (dynamical model only)
* tl.velocity_confidence

References
----------
Bergen et al. (2020), Generalizing RNA velocity to transient cell states
through dynamical modeling. Nature Biotechnology.
"""

import warnings
from typing import Dict, Optional, Sequence, Union

import anndata as ad
import numpy as np
import pandas as pd
from scipy import sparse

from .context import ExecutionContext, get_context
from .params import PipelineParams


def _transpose(counts):
    """Genes x cells -> cells x genes copy, keeping sparse input sparse."""
    if isinstance(counts, pd.DataFrame):
        return counts.to_numpy(copy=True).T
    if sparse.issparse(counts):
        return sparse.csr_matrix(counts.T, copy=True)
    return np.array(counts).T


def build_anndata(spliced,
                  unspliced,
                  genes: Optional[Sequence[str]] = None,
                  cells: Optional[Sequence[str]] = None) -> ad.AnnData:
    """
    Create the AnnData object the pipeline runs on.

    Parameters
    ----------
    spliced, unspliced : DataFrame, ndarray or sparse matrix
        Count matrices with genes as rows and cells as columns. Both must
        have the same shape.
    genes, cells : sequence of str, optional
        Labels for unlabelled inputs. DataFrame inputs use their index
        (genes) and columns (cells).

    Returns
    -------
    adata : AnnData
        Cells x genes, spliced counts in ``X`` and both matrices as layers

    Raises
    ------
    ValueError
        From AnnData, if the two matrices differ in shape
    """
    if isinstance(spliced, pd.DataFrame):
        genes = spliced.index if genes is None else genes
        cells = spliced.columns if cells is None else cells

    spliced_t = _transpose(spliced)
    unspliced_t = _transpose(unspliced)

    adata = ad.AnnData(
        spliced_t.copy(),
        layers={'spliced': spliced_t, 'unspliced': unspliced_t},
    )

    if cells is not None:
        adata.obs_names = pd.Index(cells).astype(str)
    if genes is not None:
        adata.var_names = pd.Index(genes).astype(str)
    if cells is None or genes is None:
        warnings.warn("Count matrices carry no gene/cell labels, using positional names")

    return adata


def scvelor(spliced,
            unspliced,
            output_anndata: bool = False,
            params: Union[PipelineParams, Dict, None] = None,
            context: Union[ExecutionContext, str, None] = None,
            genes: Optional[Sequence[str]] = None,
            cells: Optional[Sequence[str]] = None,
            verbose: bool = True) -> Dict:
    """
    Estimate RNA velocities with scVelo.

    Parameters
    ----------
    spliced, unspliced : DataFrame, ndarray or sparse matrix
        Count matrices with spliced and unspliced counts. They must have the
        same number of rows (genes) and columns (cells).
    output_anndata : bool
        Also return the AnnData object with all estimated values
    params : PipelineParams or dict, optional
        Arguments for the scVelo functions, keyed by function name
        (``filter_and_normalize``, ``moments``, ``recover_dynamics``,
        ``velocity``, ``velocity_graph``, ``velocity_pseudotime``,
        ``latent_time``, ``velocity_confidence``). The only required
        argument is ``params['velocity']['mode']``, one of
        'steady_state', 'stochastic' or 'dynamical'. Defaults to
        ``{'velocity': {'mode': 'stochastic'}}``.
    context : ExecutionContext or str, optional
        Where scVelo runs: a context instance, 'local' or 'isolated'.
        Defaults to ``config.DEFAULT_BACKEND``.
    genes, cells : sequence of str, optional
        Labels for unlabelled count matrices
    verbose : bool
        Print progress messages

    Returns
    -------
    result : dict
        - 'obs': per-cell annotations (DataFrame)
        - 'var': per-gene annotations (DataFrame)
        - 'adata': the annotated AnnData, if ``output_anndata``

    Examples
    --------
    >>> from scvelor.ingest import create_demo_counts
    >>> spliced, unspliced = create_demo_counts(n_cells=300, n_genes=200)
    >>> res = scvelor(spliced, unspliced, context='local',
    ...               params={'velocity': {'mode': 'stochastic'}})
    >>> res['obs']['velocity_confidence'].head()
    """
    # Fails before any context is acquired
    params = PipelineParams.coerce(params)
    plan = params.plan()

    if not isinstance(context, ExecutionContext):
        context = get_context(context, verbose=verbose)

    if verbose:
        print(f"Running scVelo pipeline ({params.mode.value} model)...")

    with context:
        adata = build_anndata(spliced, unspliced, genes=genes, cells=cells)
        if verbose:
            print(f"  AnnData: {adata.n_obs} cells × {adata.n_vars} genes")

        adata = context.run(adata, plan)

        output = {'obs': adata.obs, 'var': adata.var}
        if output_anndata:
            output['adata'] = adata

    if verbose:
        print("✓ scVelo pipeline complete")
    return output


if __name__ == "__main__":
    from .ingest import create_demo_counts

    spliced, unspliced = create_demo_counts(n_cells=300, n_genes=200)
    res = scvelor(spliced, unspliced, context='local',
                  params={'velocity': {'mode': 'stochastic'}})
    print(res['obs'].head())
    print(res['var'].head())
