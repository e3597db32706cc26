"""
Worker Module

Runs a planned sequence of scVelo steps on an AnnData object.

Imported by the package for in-process runs, and executed as a script by
the interpreter of an isolated environment:

    python worker.py INPUT.h5ad PLAN.pkl OUTPUT.h5ad ERROR.pkl

Only the standard library is imported at module level so the script runs
in an environment that has scVelo and anndata but not this package.
"""

import importlib
import inspect
import os
import pickle
import sys
from typing import NamedTuple, Dict, Any, List


class Step(NamedTuple):
    """One scVelo call: scv.<module>.<function>(<data_arg>=adata, **kwargs)."""
    name: str
    module: str
    function: str
    data_arg: str
    kwargs: Dict[str, Any]


# steps whose **kwargs scVelo passes on to another of its functions
FORWARDED_KWARGS = {
    'filter_and_normalize': ('pp', 'normalize_per_cell'),
}


def _keywords(fn):
    """Named keywords of ``fn`` and whether it also takes **kwargs."""
    try:
        parameters = inspect.signature(fn).parameters.values()
    except (TypeError, ValueError):
        return set(), True
    names = {p.name for p in parameters
             if p.kind in (p.POSITIONAL_OR_KEYWORD, p.KEYWORD_ONLY)}
    open_kwargs = any(p.kind is p.VAR_KEYWORD for p in parameters)
    return names, open_kwargs


def accepted_options(scv, step: Step):
    """
    Keywords the backend function of ``step`` accepts.

    Returns None when the function takes arbitrary **kwargs that cannot be
    resolved to a fixed set.
    """
    fn = getattr(getattr(scv, step.module), step.function)
    names, open_kwargs = _keywords(fn)
    if open_kwargs:
        target = FORWARDED_KWARGS.get(step.function)
        target_fn = getattr(getattr(scv, target[0], None), target[1], None) if target else None
        if target_fn is None:
            return None
        extra, open_extra = _keywords(target_fn)
        if open_extra:
            return None
        names = names | extra
    return names - {step.data_arg}


def check_options(plan: List[Step], scv) -> None:
    """
    Fail before any step runs if an option is not accepted by the installed
    scVelo.

    Raises
    ------
    ValueError
        Naming the step, the rejected options and the scVelo version
    """
    for step in plan:
        step = Step(*step)
        accepted = accepted_options(scv, step)
        if accepted is None:
            continue
        rejected = sorted(set(step.kwargs) - accepted)
        if rejected:
            version = getattr(scv, '__version__', 'unknown')
            raise ValueError(
                f"Option(s) for '{step.name}' not accepted by scVelo {version} "
                f"{step.module}.{step.function}: {', '.join(rejected)}"
            )


def run_steps(adata, plan: List[Step], scv, verbose: bool = True):
    """
    Run each step of the plan against ``adata`` in order.

    Parameters
    ----------
    adata : AnnData
        Dataset, mutated in place by every step
    plan : list of Step
        Steps to run
    scv : module
        The scVelo module (or any object exposing ``pp`` and ``tl``)
    verbose : bool
        Print progress messages

    Returns
    -------
    adata : AnnData
        The same object, annotated
    """
    check_options(plan, scv)
    for step in plan:
        step = Step(*step)
        if verbose:
            print(f"  Running {step.module}.{step.function}...")
        fn = getattr(getattr(scv, step.module), step.function)
        fn(**{step.data_arg: adata}, **step.kwargs)
    return adata


def _dump_error(exc: BaseException, path: str) -> None:
    import traceback

    text = ''.join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    try:
        payload = pickle.dumps(exc)
    except Exception:
        payload = None
    with open(path, 'wb') as fh:
        pickle.dump({'exception': payload, 'traceback': text}, fh)


def main(argv: List[str]) -> int:
    input_path, plan_path, output_path, error_path = argv[:4]
    verbosity = int(argv[4]) if len(argv) > 4 else 1

    try:
        import anndata as ad
        scv = importlib.import_module('scvelo')
        scv.settings.verbosity = verbosity

        with open(plan_path, 'rb') as fh:
            plan = pickle.load(fh)

        adata = ad.read_h5ad(input_path)
        run_steps(adata, plan, scv, verbose=verbosity > 0)
        adata.write_h5ad(output_path)
    except Exception as e:
        _dump_error(e, error_path)
        return 1
    return 0


if __name__ == "__main__":
    # the package directory holds modules (config, params, ...) that must not
    # shadow top-level imports of anndata or scVelo
    here = os.path.dirname(os.path.abspath(__file__))
    sys.path[:] = [p for p in sys.path if os.path.abspath(p or os.curdir) != here]
    sys.exit(main(sys.argv[1:]))
