"""
Plots Module

Plotly figures for the per-cell and per-gene tables returned by the pipeline.
"""

import numpy as np
import pandas as pd
import plotly.graph_objects as go
from typing import Optional


# obs columns written by scVelo, in pipeline order
OBS_SUMMARY_COLUMNS = [
    'velocity_self_transition',
    'velocity_pseudotime',
    'latent_time',
    'velocity_length',
    'velocity_confidence',
    'velocity_confidence_transition',
]


def summary_columns(obs: pd.DataFrame):
    """Columns of ``obs`` worth plotting, in pipeline order."""
    return [c for c in OBS_SUMMARY_COLUMNS if c in obs.columns]


def plot_histogram(obs: pd.DataFrame, column: str,
                   title: Optional[str] = None,
                   n_bins: int = 40) -> go.Figure:
    """Histogram of one per-cell annotation."""
    if column not in obs.columns:
        raise ValueError(f"Column '{column}' not found in obs")

    values = obs[column].to_numpy(dtype=float)
    values = values[np.isfinite(values)]

    fig = go.Figure()
    fig.add_trace(go.Histogram(x=values, nbinsx=n_bins, name=column))
    fig.update_layout(
        title=title or column.replace('_', ' ').capitalize(),
        xaxis_title=column,
        yaxis_title='Cells',
        height=350,
        bargap=0.05
    )
    return fig


def plot_pseudotime_vs_latent_time(obs: pd.DataFrame) -> go.Figure:
    """Scatter of velocity pseudotime against latent time (dynamical model)."""
    for column in ('velocity_pseudotime', 'latent_time'):
        if column not in obs.columns:
            raise ValueError(f"Column '{column}' not found in obs")

    fig = go.Figure()
    fig.add_trace(go.Scatter(
        x=obs['velocity_pseudotime'],
        y=obs['latent_time'],
        mode='markers',
        text=obs.index,
        marker=dict(
            size=5,
            color=obs.get('velocity_confidence'),
            colorscale='RdYlBu_r',
            showscale='velocity_confidence' in obs.columns
        )
    ))
    fig.update_layout(
        title='Velocity Pseudotime vs Latent Time',
        xaxis_title='velocity_pseudotime',
        yaxis_title='latent_time',
        height=450,
        hovermode='closest'
    )
    return fig
