# pairforce/particle_data.py

"""
Holds the particle arrays of one force pass on the host (NumPy) and on the
Taichi device.

Tracks which copy of every attribute is authoritative and moves data between
host and device either implicitly (on `get`) or explicitly via `ensure`.
Positions are written once by the host and only read by the kernels; forces
are produced on whichever device the active model runs on and read back once.
"""

import numpy as np
import gc
import traceback
from typing import Dict, List, Optional, Sequence, Tuple, Union

from pairforce.errors import AllocationError

try:
    import taichi as ti
    HAVE_TAICHI = True
except ImportError:
    ti = None
    HAVE_TAICHI = False

# type definitions
DeviceStr = str
AttrName = str      # "positions" or "forces"
NpArray = np.ndarray
TiField = object


class ParticleData:
    """
    Particle positions and force accumulators across cpu and the Taichi device.

    Location tracking: `_location[name]` names the device holding the
    authoritative copy; `_gpu_dirty[name]` flags a device copy that lags the host.
    """
    VALID_DEVICES = {"cpu", "gpu:ti"}

    def __init__(self, N: int, allow_implicit_transfers: bool = True, numpy_precision: type = np.float64, taichi_is_active: bool = False):
        if not isinstance(N, (int, np.integer)) or N < 1:
            raise ValueError(f"N must be a positive integer, got {N}")
        self.N = int(N)
        self._allow_implicit_transfers = allow_implicit_transfers
        self._locked_writeable: Dict[AttrName, bool] = {}
        self._internal_numpy_fp_type = numpy_precision
        self._taichi_is_active = taichi_is_active and HAVE_TAICHI

        # (shape_suffix, dtype) per attribute
        self._attr_definitions = {
            "positions": ((3,), self._internal_numpy_fp_type),
            "forces":    ((3,), self._internal_numpy_fp_type),
        }
        self._data_cpu: Dict[AttrName, Optional[NpArray]] = {}
        self._location: Dict[AttrName, DeviceStr] = {}
        self._gpu_copies: Dict[AttrName, Dict[DeviceStr, object]] = {}
        self._gpu_dirty: Dict[AttrName, bool] = {}

        for name, (shape_suffix, dtype) in self._attr_definitions.items():
            full_shape = (self.N,) + shape_suffix
            try:
                self._data_cpu[name] = np.zeros(full_shape, dtype=dtype)
            except MemoryError as e:
                print(f"ERROR: ParticleData failed allocating host array '{name}' {full_shape}. Not enough memory.")
                self._data_cpu = {}; gc.collect()
                raise AllocationError(f"Host allocation of '{name}' {full_shape} failed.") from e
            self._location[name] = "cpu"
            self._gpu_copies[name] = {}
            self._gpu_dirty[name] = False
            self._locked_writeable[name] = False

    @classmethod
    def from_components(cls, x: Sequence[float], y: Sequence[float], z: Sequence[float], **kwargs) -> "ParticleData":
        """Builds a ParticleData from three equal-length coordinate sequences."""
        x = np.asarray(x, dtype=np.float64).ravel()
        y = np.asarray(y, dtype=np.float64).ravel()
        z = np.asarray(z, dtype=np.float64).ravel()
        if not (x.shape == y.shape == z.shape):
            raise ValueError(f"Coordinate sequences differ in length: x={x.size}, y={y.size}, z={z.size}")
        pd = cls(int(x.size), **kwargs)
        pd.set("positions", np.stack([x, y, z], axis=1))
        return pd

    def _validate_attribute(self, name: AttrName):
        if name not in self._attr_definitions:
            raise KeyError(f"Unknown attribute: '{name}'. Valid: {list(self._attr_definitions.keys())}")

    def _validate_device(self, device: DeviceStr):
        if device not in self.VALID_DEVICES:
            raise ValueError(f"Invalid device: '{device}'. Valid: {self.VALID_DEVICES}")
        if device == "gpu:ti" and not self._taichi_is_active:
            raise RuntimeError("Taichi device requested but Taichi is not active for this ParticleData.")

    # public info getters
    def get_n(self) -> int: return self.N
    def get_dtype(self, name: AttrName) -> np.dtype:
        self._validate_attribute(name)
        return self._attr_definitions[name][1]
    def get_shape(self, name: AttrName) -> Tuple[int, ...]:
        self._validate_attribute(name)
        return (self.N,) + self._attr_definitions[name][0]
    def get_attribute_names(self) -> List[AttrName]: return list(self._attr_definitions.keys())
    def get_location(self, name: AttrName) -> DeviceStr:
        self._validate_attribute(name)
        return self._location[name]

    def set(self, name: AttrName, data: NpArray):
        """Replaces an attribute from host data, invalidating device copies."""
        self._validate_attribute(name)
        expected_shape = self.get_shape(name)
        expected_dtype = self.get_dtype(name)
        data = np.asarray(data)
        if data.shape != expected_shape: raise ValueError(f"Shape mismatch set('{name}'): {data.shape} vs {expected_shape}")
        if not np.all(np.isfinite(data)): raise ValueError(f"set('{name}'): data contains NaN or Inf")
        self._data_cpu[name] = np.array(data, dtype=expected_dtype, copy=True)
        self._location[name] = "cpu"
        self._gpu_dirty[name] = True
        self._locked_writeable[name] = False

    def get(self, name: AttrName, device: DeviceStr = "cpu", writeable: bool = False) -> Union[NpArray, TiField]:
        """Returns the attribute on `device`, transferring if the copy there is stale."""
        self._validate_attribute(name)
        self._validate_device(device)
        current_location = self._location.get(name, 'cpu')

        if writeable:
            if device != "cpu": raise ValueError("Writeable access only for device='cpu'.")
            if self._locked_writeable.get(name, False): raise RuntimeError(f"'{name}' already locked for writing.")
            if current_location != "cpu":
                gpu_data = self._gpu_copies[name].get(current_location)
                if gpu_data is not None:
                    self._data_cpu[name] = self._transfer_gpu_to_cpu(name, gpu_data, current_location)
            self._locked_writeable[name] = True
            self._location[name] = "cpu"
            self._gpu_dirty[name] = True
            return self._data_cpu[name]

        if device == "cpu":
            if current_location == "cpu": return self._data_cpu[name]
            if not self._allow_implicit_transfers: raise RuntimeError(f"Device->host transfer needed for '{name}', implicit transfers disabled.")
            gpu_data = self._gpu_copies[name].get(current_location)
            if gpu_data is None: raise RuntimeError(f"Cannot transfer '{name}': authoritative device data missing from '{current_location}'.")
            cpu_data = self._transfer_gpu_to_cpu(name, gpu_data, current_location)
            self._data_cpu[name] = cpu_data
            self._location[name] = "cpu"
            self._gpu_dirty[name] = False
            return cpu_data

        gpu_data = self._gpu_copies[name].get(device)
        if gpu_data is not None and (current_location == device or not self._gpu_dirty[name]):
            return gpu_data
        if current_location == device:
            print(f"Warn: Location '{device}' but device copy missing for '{name}'. Re-uploading from host.")
        if not self._allow_implicit_transfers: raise RuntimeError(f"Host->device transfer needed for '{name}', implicit transfers disabled.")
        target_gpu_data = self._transfer_data(name, self._data_cpu[name], device)
        self._gpu_copies[name][device] = target_gpu_data
        self._location[name] = device
        self._gpu_dirty[name] = False
        return target_gpu_data

    def ensure(self, names: Union[AttrName, List[AttrName], str], target_device: DeviceStr):
        """Makes sure attribute(s) are up to date on `target_device` and waits for the copies."""
        self._validate_device(target_device)
        if isinstance(names, str): names = names.split()
        if target_device == "cpu":
            for name in names: self.get(name, "cpu")
            return

        for name in names:
            self._validate_attribute(name)
            if self._location[name] == target_device: continue # device copy is authoritative
            gpu_copy_exists = target_device in self._gpu_copies[name]
            if not gpu_copy_exists or self._gpu_dirty[name]:
                self._gpu_copies[name][target_device] = self._transfer_data(name, self._data_cpu[name], target_device)
                self._gpu_dirty[name] = False

        self.synchronize(target_device)

    def mark_device_authoritative(self, name: AttrName, device: DeviceStr, gpu_data: TiField):
        """Registers `gpu_data` (written by a kernel) as the current value of `name`."""
        self._validate_attribute(name)
        self._validate_device(device)
        if device == "cpu": raise ValueError("Use set() for host data.")
        self._gpu_copies[name][device] = gpu_data
        self._location[name] = device
        self._gpu_dirty[name] = False

    def _transfer_gpu_to_cpu(self, name: AttrName, gpu_data: object, source_device: DeviceStr) -> NpArray:
        target_np_dtype = self.get_dtype(name)
        try:
            if source_device != "gpu:ti": raise ValueError(f"Unsupported device->host source: {source_device}")
            ti.sync() # completion barrier before readback
            np_array = gpu_data.to_numpy()
            return np_array.astype(target_np_dtype, copy=False)
        except Exception as e:
            print(f"ERROR device->host transfer '{name}' from '{source_device}': {e}"); traceback.print_exc()
            raise RuntimeError(f"Device->host transfer failed for '{name}'.") from e

    def synchronize(self, device: DeviceStr):
        """Blocks until all queued work on `device` has completed."""
        if device == "gpu:ti" and self._taichi_is_active:
            ti.sync()

    def release_writeable(self, name: AttrName):
        """Releases a write lock obtained via `get(..., writeable=True)`."""
        self._validate_attribute(name)
        self._locked_writeable[name] = False

    def _transfer_data(self, name: AttrName, source_np_array: NpArray, target_device: DeviceStr) -> object:
        """Uploads host data into a (re-used or new) Taichi vector field."""
        if target_device != "gpu:ti":
            raise ValueError(f"Invalid target device '{target_device}' for transfer.")
        try:
            target_ti_dtype = ti.lang.impl.current_cfg().default_fp
            shape_suffix = self._attr_definitions[name][0]
            field = self._gpu_copies[name].get(target_device)
            if field is None or field.dtype != target_ti_dtype or field.shape != (self.N,):
                field = ti.Vector.field(shape_suffix[0], dtype=target_ti_dtype, shape=self.N, layout=ti.Layout.SOA)
            field.from_numpy(source_np_array)
            return field
        except MemoryError as e:
            print(f"ERROR: Out of memory allocating device field '{name}' (N={self.N}).")
            raise AllocationError(f"Device allocation of '{name}' failed.") from e
        except Exception as e:
            print(f"ERROR during data transfer of '{name}' to '{target_device}': {e}")
            traceback.print_exc()
            raise AllocationError(f"Device allocation/transfer failed for '{name}' to '{target_device}'.") from e

    def get_force_components(self) -> Tuple[NpArray, NpArray, NpArray]:
        """Returns host copies of (fx, fy, fz), reading back from the device if needed."""
        forces = self.get("forces", "cpu")
        return forces[:, 0].copy(), forces[:, 1].copy(), forces[:, 2].copy()

    def cleanup_gpu_resources(self):
        """Drops device copies; the host copies stay valid."""
        for name in self._attr_definitions:
            if self._location[name] != "cpu":
                self.get(name, "cpu")
        if HAVE_TAICHI:
            for name in self._gpu_copies:
                ti_field = self._gpu_copies[name].get("gpu:ti")
                if ti_field is not None and hasattr(ti_field, 'destroy'):
                    try: ti_field.destroy()
                    except Exception as e: print(f"  Warn: Non-fatal error destroying Ti field '{name}': {e}")
        self._gpu_copies = {name: {} for name in self._attr_definitions}
        gc.collect()
