"""
Streamlit Web Interface

Run the scVelo pipeline on demo or uploaded data and browse the results.

    streamlit run src/scvelor/ui_streamlit.py
"""

import tempfile
from pathlib import Path

import streamlit as st

from scvelor.ingest import create_demo_counts, load_h5ad, counts_from_anndata
from scvelor.params import VelocityMode
from scvelor.pipeline import scvelor
from scvelor.plots import plot_histogram, plot_pseudotime_vs_latent_time, summary_columns


# ============================================================================
# PAGE CONFIG & STATE INITIALIZATION
# ============================================================================

st.set_page_config(
    page_title="scVelo Runner",
    layout="wide",
    initial_sidebar_state="expanded"
)

if 'counts' not in st.session_state:
    st.session_state.counts = None
if 'result' not in st.session_state:
    st.session_state.result = None


# ============================================================================
# MAIN UI
# ============================================================================

def main():
    st.title("🧬 scVelo Runner")
    st.markdown("**RNA velocity from spliced and unspliced counts**")

    # ========================================================================
    # STEP 1: LOAD DATA
    # ========================================================================

    st.header("Step 1️⃣ Load Data", divider="blue")

    data_source = st.radio(
        "Choose data source:",
        ["📊 Demo Counts", "📁 Upload .h5ad / .loom File"],
        horizontal=True
    )

    if data_source == "📊 Demo Counts":
        col1, col2, col3 = st.columns(3)
        with col1:
            n_cells = st.number_input("Cells:", 100, 5000, 500)
        with col2:
            n_genes = st.number_input("Genes:", 50, 3000, 300)
        with col3:
            if st.button("🚀 Load Demo", use_container_width=True):
                with st.spinner("Creating demo counts..."):
                    st.session_state.counts = create_demo_counts(n_cells, n_genes)
                    st.session_state.result = None
                st.rerun()
    else:
        uploaded_file = st.file_uploader("Upload file", type=['h5ad', 'loom'])
        if uploaded_file is not None:
            with st.spinner("Loading..."):
                suffix = Path(uploaded_file.name).suffix
                with tempfile.TemporaryDirectory() as tmp:
                    temp_path = Path(tmp) / f"upload{suffix}"
                    temp_path.write_bytes(uploaded_file.getbuffer())
                    adata = load_h5ad(temp_path)
                try:
                    st.session_state.counts = counts_from_anndata(adata)
                    st.session_state.result = None
                except ValueError as e:
                    st.error(f"❌ {e}")

    if st.session_state.counts is None:
        st.info("No data loaded yet")
        st.stop()

    spliced, unspliced = st.session_state.counts
    st.success(f"✅ **Loaded:** {spliced.shape[1]} cells × {spliced.shape[0]} genes")

    # ========================================================================
    # STEP 2: PIPELINE OPTIONS
    # ========================================================================

    st.header("Step 2️⃣ Options", divider="blue")

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        mode = st.selectbox("Velocity mode:", [m.value for m in VelocityMode], index=1)
    with col2:
        min_shared_counts = st.number_input("Min shared counts:", 0, 100, 20)
    with col3:
        n_pcs = st.number_input("PCA dims:", 5, 100, 30)
    with col4:
        n_neighbors = st.number_input("kNN:", 5, 100, 30)

    backend = st.radio("Run scVelo in:", ["local", "isolated"], horizontal=True)

    params = {
        'filter_and_normalize': {'min_shared_counts': int(min_shared_counts)},
        'moments': {'n_pcs': int(n_pcs), 'n_neighbors': int(n_neighbors)},
        'velocity': {'mode': mode},
    }

    if st.button("▶️ Run scVelo", use_container_width=True, type="primary"):
        with st.spinner(f"Running scVelo ({mode})..."):
            st.session_state.result = scvelor(spliced, unspliced, params=params,
                                              context=backend, verbose=False)
        st.success("✅ Pipeline complete!")

    result = st.session_state.result
    if result is None:
        st.stop()

    # ========================================================================
    # STEP 3: RESULTS
    # ========================================================================

    st.header("Step 3️⃣ Results", divider="blue")

    obs, var = result['obs'], result['var']
    tab1, tab2, tab3 = st.tabs(["📈 Distributions", "🧫 Cells (obs)", "🧬 Genes (var)"])

    with tab1:
        columns = summary_columns(obs)
        for i in range(0, len(columns), 2):
            cols = st.columns(2)
            for col, column in zip(cols, columns[i:i + 2]):
                with col:
                    st.plotly_chart(plot_histogram(obs, column), use_container_width=True)
        if 'latent_time' in obs.columns:
            st.plotly_chart(plot_pseudotime_vs_latent_time(obs), use_container_width=True)

    with tab2:
        st.dataframe(obs)

    with tab3:
        if 'velocity_genes' in var.columns:
            st.metric("Velocity genes", int(var['velocity_genes'].sum()))
        st.dataframe(var)

    st.markdown("---")
    st.markdown("Built with Streamlit | RNA velocity with scVelo")


if __name__ == "__main__":
    main()
