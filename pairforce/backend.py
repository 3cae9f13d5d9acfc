# pairforce/backend.py
"""
Taichi runtime initialisation.

Tries the preferred arch and precision first, then falls back to f32 and to the
CPU arch. The outcome is returned as a flags dict consumed by ParticleData,
ForceManager and main.py:

    taichi         -> True if ti.init succeeded
    arch           -> name of the arch actually in use ('cuda', 'vulkan', 'cpu', ...)
    f64            -> True if the active default_fp is f64
    np_float_type  -> NumPy dtype matching the effective precision
"""

import traceback
from typing import Dict, Any

import numpy as np

try:
    import taichi as ti
    HAVE_TAICHI = True
except ImportError:
    ti = None
    HAVE_TAICHI = False


def _arch_name(arch) -> str:
    return next((k for k, v in ti.__dict__.items() if v == arch and not k.startswith('_')), 'unknown')


def init_taichi(preferred_arch: str = "gpu", double_precision: bool = True,
                device_memory_gb: float = 2.0) -> Dict[str, Any]:
    """Initialises Taichi, returning backend flags (see module docstring)."""
    flags = {"taichi": False, "arch": None, "f64": double_precision,
             "np_float_type": np.float64 if double_precision else np.float32}
    if not HAVE_TAICHI:
        print("Taichi: Library not found. Accelerator models disabled.")
        return flags

    preferred_fp = ti.f64 if double_precision else ti.f32
    try:
        preferred_arch_enum = getattr(ti, preferred_arch)
    except AttributeError:
        print(f"  Warning: Invalid taichi arch '{preferred_arch}'. Falling back to cpu.")
        preferred_arch_enum = ti.cpu

    init_kwargs = {"default_ip": ti.i32}
    if preferred_arch_enum != ti.cpu:
        init_kwargs["device_memory_GB"] = device_memory_gb
    init_attempts = [
        {"arch": preferred_arch_enum, "default_fp": preferred_fp},
        {"arch": preferred_arch_enum, "default_fp": ti.f32} if preferred_fp == ti.f64 else None,
        {"arch": ti.cpu, "default_fp": preferred_fp} if preferred_arch_enum != ti.cpu else None,
        {"arch": ti.cpu, "default_fp": ti.f32} if preferred_arch_enum != ti.cpu and preferred_fp == ti.f64 else None,
    ]

    print("Taichi: Attempting Initialization...")
    for attempt_cfg in init_attempts:
        if attempt_cfg is None: continue
        try:
            ti.init(**{**init_kwargs, **attempt_cfg})
            flags["taichi"] = True
            break
        except Exception as e:
            print(f"  Taichi init failed (arch={_arch_name(attempt_cfg['arch'])}): {e}")

    if not flags["taichi"]:
        print("  Taichi: Initialization FAILED.")
        return flags

    try:
        cfg = ti.lang.impl.current_cfg()
        flags["arch"] = _arch_name(cfg.arch)
        flags["f64"] = cfg.default_fp == ti.f64
    except Exception:
        traceback.print_exc()
    if double_precision and not flags["f64"]:
        print("  WARNING: f64 requested, but the Taichi backend lacks support. Using f32.")
    flags["np_float_type"] = np.float64 if flags["f64"] else np.float32
    print(f"  Taichi: OK (Arch={flags['arch']}, FP={'f64' if flags['f64'] else 'f32'})")
    return flags
