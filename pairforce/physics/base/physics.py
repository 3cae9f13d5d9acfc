# pairforce/physics/base/physics.py
"""
Defines the Abstract Base Class (ABC) for all physics models.

Gives the different force implementations one interface so the ForceManager
can select, configure and run them uniformly.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional

from pairforce.particle_data import ParticleData

class PhysicsModel(ABC):
    """
    Abstract Base Class for physics calculation components.

    Concrete models inherit from this class, implement `setup` and the compute
    methods of their family (see PairForceModel).
    """
    def __init__(self, config: Optional[Dict] = None):
        """
        Initialize the physics model with configuration.

        Args:
            config: Run-wide configuration dictionary. A copy is stored.
        """
        self.config: Dict = config.copy() if config is not None else {}
        self._is_setup: bool = False

    @abstractmethod
    def setup(self, pd: ParticleData):
        """
        Perform model-specific setup and precomputation.

        Implementations validate their configuration keys, allocate any device
        resources they own and call `super().setup(pd)` last so the ready flag
        is only set after a successful setup.

        Args:
            pd: The particle data manager.
        """
        self._is_setup = True

    def is_ready(self) -> bool:
        """Checks if the model's setup method has been successfully completed."""
        return self._is_setup

    def update_config(self, config: Dict):
         """
         Merges `config` into the model's configuration.

         Subclasses that cache derived values override this and re-derive them
         after calling `super().update_config(config)`.
         """
         if config:
              self.config.update(config)

    def cleanup(self):
         """Releases resources owned by this model instance (device fields etc.)."""
         self._is_setup = False
