"""All-pairs Lennard-Jones force computation on a parallel accelerator."""

__version__ = "0.1.0"
