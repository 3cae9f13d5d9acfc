# config/available_models.py
"""
Defines the force models available for selection.
The structure allows dynamic loading by the ForceManager.
"""

AVAILABLE_MODELS = {
    "pair_force": [
        {
            "id": "lj_pairs_taichi",
            "name": "LJ Pair Grid (Taichi)",
            "description": "N^2 work items, upper-triangle filter, atomic accumulation into both particles (GPU/CPU).",
            "module": "pairforce.physics.lj.lj_pairs_taichi",
            "class": "LJPairsTaichi",
            "required_backend": "gpu:ti",
            "pair_count": True,
            "notes": "About half the work items are discarded. Grid index is i32, so N <= 46340.",
        },
        {
            "id": "lj_gather_taichi",
            "name": "LJ Per-Particle Gather (Taichi)",
            "description": "One work item per particle summing all partners; no atomics (GPU/CPU).",
            "module": "pairforce.physics.lj.lj_gather_taichi",
            "class": "LJGatherTaichi",
            "required_backend": "gpu:ti",
            "notes": "Computes every distance twice; output is deterministic per particle.",
        },
        {
            "id": "lj_gather_numba",
            "name": "LJ Per-Particle Gather (Numba)",
            "description": "Per-particle gather parallelised with Numba prange (CPU).",
            "module": "pairforce.physics.lj.lj_gather_numba",
            "class": "LJGatherNumba",
            "required_backend": "numba",
            "notes": "First call includes JIT compilation time.",
        },
        {
            "id": "lj_pp_cpu",
            "name": "LJ Reference (NumPy)",
            "description": "Vectorised upper-triangle evaluation with np.add.at scattering (CPU).",
            "module": "pairforce.physics.lj.lj_pp_cpu",
            "class": "LJPPCpu",
            "required_backend": "numpy",
            "notes": "O(N^2) temporary memory. Intended for validation.",
        },
    ],
}

# --- validate the models ---
def _validate_models():
    for model_type, model_list in AVAILABLE_MODELS.items():
        if not isinstance(model_list, list):
            raise TypeError(f"AVAILABLE_MODELS entry for '{model_type}' must be a list.")
        ids = [model_def.get("id") for model_def in model_list]
        if len(ids) != len(set(ids)):
            raise ValueError(f"Duplicate model ids in '{model_type}': {ids}")
        for model_def in model_list:
            required_keys = ["id", "name", "module", "class", "required_backend"]
            if not all(key in model_def for key in required_keys):
                raise ValueError(f"Model definition in '{model_type}' is missing required keys: {model_def}")
_validate_models()
