# pairforce/utils.py
"""Small helpers shared by the force models, the manager and the report."""

import functools
import importlib
import importlib.util
import time

import numpy as np
import psutil

# (backend_id, taichi_ok) -> bool
_backend_cache = {}


def get_memory_usage_gb() -> float:
    """Resident set size of this process in GiB."""
    return psutil.Process().memory_info().rss / 2**30


def timing_decorator(func):
    """Prints the wall time of each call to `func`."""
    @functools.wraps(func)
    def timed(*args, **kwargs):
        t0 = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            print(f"Timing: {func.__qualname__} took {(time.perf_counter() - t0) * 1e3:.3f} ms")
    return timed


def dynamic_import(module_name, class_name):
    """Loads `class_name` from `module_name` (model registry entries)."""
    try:
        return getattr(importlib.import_module(module_name), class_name)
    except (ImportError, AttributeError) as e:
        print(f"ERROR: Cannot load force model class '{module_name}.{class_name}': {e}")
        raise


def check_backend_availability(backend_id: str, taichi_init_flag: bool = False) -> bool:
    """Whether a model's required backend ('numpy', 'gpu:ti' or 'numba') can be used."""
    key = (backend_id, bool(taichi_init_flag))
    if key not in _backend_cache:
        if backend_id == "numpy":
            ok = True
        elif backend_id == "gpu:ti":
            ok = bool(taichi_init_flag)
        elif backend_id == "numba":
            ok = importlib.util.find_spec("numba") is not None
        else:
            print(f"Warning: Unknown backend '{backend_id}'.")
            ok = False
        _backend_cache[key] = ok
    return _backend_cache[key]


def format_value_scientific(value, precision=2) -> str:
    """Scientific notation for the summary; '-' for NaN/Inf, '0.0e+00' for round-off residue."""
    if not np.isfinite(value):
        return "-"
    if abs(value) < 1e-15:
        return "0.0e+00"
    return f"{value:.{precision}e}"
