"""
Data Ingestion Module

Loading spliced/unspliced count matrices for the scVelo pipeline.
"""

import scanpy as sc
import anndata as ad
import numpy as np
import pandas as pd
from pathlib import Path
from typing import Union, Tuple, Optional


SUPPORTED_SUFFIXES = ('.h5ad', '.loom')


def load_h5ad(filepath: Union[str, Path]) -> ad.AnnData:
    """
    Load a velocyto/STARsolo output with spliced and unspliced layers.

    Parameters
    ----------
    filepath : str or Path
        Path to a .h5ad or .loom file

    Returns
    -------
    adata : AnnData
        Loaded data object (cells x genes)

    Examples
    --------
    >>> adata = load_h5ad('data/pancreas.h5ad')
    >>> spliced, unspliced = counts_from_anndata(adata)
    """
    filepath = Path(filepath)

    if not filepath.exists():
        raise FileNotFoundError(f"File not found: {filepath}")

    if filepath.suffix not in SUPPORTED_SUFFIXES:
        raise ValueError(f"Expected .h5ad or .loom file, got {filepath.suffix}")

    print(f"Loading {filepath.name}...")
    if filepath.suffix == '.loom':
        adata = sc.read_loom(filepath)
    else:
        adata = sc.read_h5ad(filepath)

    print(f"✓ Loaded {adata.n_obs} cells × {adata.n_vars} genes")
    return adata


def _layer_frame(adata: ad.AnnData, layer: str) -> pd.DataFrame:
    X = adata.layers[layer]
    X = X.toarray() if hasattr(X, 'toarray') else np.asarray(X)
    return pd.DataFrame(X.T, index=adata.var_names.copy(), columns=adata.obs_names.copy())


def counts_from_anndata(adata: ad.AnnData) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Extract spliced and unspliced counts as genes x cells tables.

    Raises
    ------
    ValueError
        If either layer is missing
    """
    missing = [k for k in ('spliced', 'unspliced') if k not in adata.layers]
    if missing:
        raise ValueError(f"Missing layer(s): {', '.join(missing)}")

    return _layer_frame(adata, 'spliced'), _layer_frame(adata, 'unspliced')


def create_demo_counts(n_cells: int = 500,
                       n_genes: int = 300,
                       seed: Optional[int] = 42) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Create synthetic spliced/unspliced counts along a trajectory.

    Parameters
    ----------
    n_cells : int
        Number of cells to generate
    n_genes : int
        Number of genes to generate
    seed : int, optional
        Random seed

    Returns
    -------
    spliced, unspliced : DataFrame
        Genes x cells count tables
    """
    rng = np.random.default_rng(seed)

    # Simulate developmental trajectory
    pseudotime = np.linspace(0, 1, n_cells)

    spliced = rng.negative_binomial(5, 0.3, size=(n_genes, n_cells)).astype(np.float32)

    # Add trajectory structure
    third = n_genes // 3
    spliced[:third] *= 1 + 3 * pseudotime
    spliced[third:2 * third] *= 1 + 3 * (1 - pseudotime)
    spliced[2 * third:] *= 1 + 5 * np.sin(pseudotime * np.pi)
    spliced = np.round(spliced)

    # Unspliced leads spliced: more nascent RNA where expression is rising
    ratio = rng.uniform(0.2, 0.6, size=(n_genes, 1))
    shift = np.roll(spliced, -max(n_cells // 20, 1), axis=1)
    unspliced = np.round(ratio * shift)

    genes = [f'Gene_{i}' for i in range(n_genes)]
    cells = [f'Cell_{i}' for i in range(n_cells)]

    print(f"✓ Created demo counts: {n_genes} genes × {n_cells} cells")
    return (pd.DataFrame(spliced, index=genes, columns=cells),
            pd.DataFrame(unspliced, index=genes, columns=cells))


if __name__ == "__main__":
    spliced, unspliced = create_demo_counts()
    print(spliced.iloc[:5, :5])
