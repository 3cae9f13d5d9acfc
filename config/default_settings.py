# config/default_settings.py

# NOTE: Taichi on the Metal/OpenGL arch has no f64; the backend init then falls back to f32.

DEFAULT_SETTINGS = {
    # --- Backend ---
    'USE_DOUBLE_PRECISION': True,     # User preference, effective value determined by pairforce.backend.init_taichi
    'default_taichi_arch': 'gpu',     # Preferred Taichi arch ('gpu', 'cuda', 'vulkan', 'metal', 'cpu')
    'taichi_device_memory_gb': 2.0,   # Device memory pre-allocation for GPU archs
    'default_force_model': 'lj_pairs_taichi',

    # --- Initial Conditions ---
    'N': 100,                   # Number of particles
    'positions_init': 'box',    # 'box' (uniform in [0, box_size)^3) or 'sphere' (uniform in a ball)
    'box_size': 10.0,           # Edge of the initial cube
    'radius': 5.0,              # Radius of the initial ball
    'seed': None,               # RNG seed (None -> fresh entropy)

    # --- Lennard-Jones Parameters ---
    'sigma': 1.0,               # Characteristic distance
    'epsilon': 1.0,             # Well depth
    'r2_min': 1e-10,            # Squared distance below which a pair is singular
    'singularity_policy': 'error', # 'error', 'skip' or 'clamp'

    # --- Dispatch ---
    'block_dim': 128,           # Work items per group on the accelerator

    # --- Output ---
    'print_forces': True,       # Print one "Force on atom" line per particle
    'report_energy': False,     # Also compute and print the total potential energy
    'report_separation': True,  # Print min/max pair separation (skipped for large N)
}
