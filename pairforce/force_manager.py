# pairforce/force_manager.py
"""
Manages the selection and execution of pairwise force models.

Loads the model registry (config.available_models), checks each model's
backend requirement against what initialised at startup, instantiates the
selected model dynamically and runs a force pass: zero the host accumulator,
compute, read the forces back.
"""

from typing import Dict, List, Optional, Tuple
import traceback
import numpy as np

from pairforce.particle_data import ParticleData
from pairforce.errors import SingularityError
from pairforce.physics.base.pair_force import PairForceModel, count_nonfinite
from pairforce.utils import dynamic_import, check_backend_availability
from config.available_models import AVAILABLE_MODELS

class ForceManager:
    """Handles selection, setup, and execution of the active force model."""

    MODEL_TYPE = "pair_force"

    def __init__(self, pd: ParticleData, initial_config: dict, backend_availability_flags: Dict[str, bool]):
        self._pd = pd
        self._config = initial_config.copy()
        self._backend_flags = backend_availability_flags
        self._available_models: Dict[str, Dict] = {}
        self._active_model: Optional[PairForceModel] = None
        self._active_model_id: Optional[str] = None
        self._load_available_models()

    def _load_available_models(self):
        for model_def in AVAILABLE_MODELS.get(self.MODEL_TYPE, []):
            model_def = dict(model_def)
            required_backend = model_def.get("required_backend", "numpy")
            model_def['_backend_available'] = check_backend_availability(
                required_backend,
                taichi_init_flag=self._backend_flags.get("taichi", False),
            )
            self._available_models[model_def['id']] = model_def

    def get_available_models(self) -> List[Dict]:
        """Returns all registered models, including the '_backend_available' flag."""
        return list(self._available_models.values())

    @property
    def active_model(self) -> Optional[PairForceModel]:
        return self._active_model

    @property
    def active_model_id(self) -> Optional[str]:
        return self._active_model_id

    def select_model(self, model_id: str):
        """Instantiates and sets up `model_id`, replacing the current model."""
        if model_id not in self._available_models:
            raise ValueError(f"Unknown force model ID '{model_id}'. Available: {list(self._available_models.keys())}")
        model_def = self._available_models[model_id]

        if self._active_model_id == model_id and self._active_model is not None:
            self._active_model.update_config(self._config)
            return

        if not model_def.get('_backend_available', False):
            required = model_def.get("required_backend", "N/A")
            raise ValueError(f"Cannot select '{model_id}': Required backend '{required}' unavailable.")

        print(f"Selecting force model: '{model_def.get('name', model_id)}' ({model_id})...")
        try:
            ModelClass = dynamic_import(model_def['module'], model_def['class'])
            new_model = ModelClass(config=self._config)
            new_model.setup(self._pd)
        except Exception as e:
            print(f"ERROR: Failed to select/setup model '{model_id}': {e}")
            self._active_model = None
            self._active_model_id = None
            raise

        self.cleanup_models()
        self._active_model = new_model
        self._active_model_id = model_id

    def _require_model(self) -> PairForceModel:
        if self._active_model is None:
            raise RuntimeError("No force model selected. Call select_model() first.")
        return self._active_model

    def compute_forces(self) -> np.ndarray:
        """
        Runs one force pass and returns the (N, 3) host force array.

        The host accumulator is zeroed first so a failed pass never leaves
        stale forces behind. Non-finite results raise SingularityError and
        leave the host forces zeroed.
        """
        model = self._require_model()
        self._zero_host_forces()
        try:
            model.compute_forces(self._pd)
        except Exception as e:
            print(f"ERROR during {self._active_model_id}.compute_forces: {e}")
            raise
        forces = self._pd.get("forces", "cpu")
        n_bad = count_nonfinite(forces)
        if n_bad:
            self._zero_host_forces()
            print(f"ERROR: {self._active_model_id} produced {n_bad} non-finite force component(s).")
            raise SingularityError(0, model.r2_threshold, n_nonfinite=n_bad)
        return forces

    def _zero_host_forces(self):
        f_write = self._pd.get("forces", "cpu", writeable=True); f_write.fill(0.0); self._pd.release_writeable("forces")

    def compute_potential_energy(self) -> float:
        model = self._require_model()
        energy = model.compute_potential_energy(self._pd)
        if not np.isfinite(energy):
            raise SingularityError(0, model.r2_threshold, n_nonfinite=1)
        return energy

    def count_pair_visits(self) -> Tuple[np.ndarray, int]:
        """Instrumented enumeration of the active model, if it provides one."""
        model = self._require_model()
        if not self._available_models[self._active_model_id].get("pair_count", False):
            raise ValueError(f"Model '{self._active_model_id}' has no instrumented pair enumeration.")
        return model.count_pair_visits(self._pd)

    def update_config(self, new_config: dict):
         """Updates internal config and propagates it to the active model."""
         previous = dict(self._config)
         self._config.update(new_config)
         if self._active_model is not None:
              try: self._active_model.update_config(self._config)
              except Exception:
                   self._config = previous
                   raise

    def cleanup_models(self):
         """Calls cleanup on the active model instance."""
         if self._active_model is not None:
              try: self._active_model.cleanup()
              except Exception as e:
                   print(f"Warn: Error cleaning up '{self._active_model_id}' model: {e}")
                   traceback.print_exc()
         self._active_model = None
         self._active_model_id = None
