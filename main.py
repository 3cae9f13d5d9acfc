# ==================================================
#      <<< COMMAND LINE ENTRY POINT >>>
# ==================================================
"""
main.py runs one Lennard-Jones force pass from the command line.

1. Settings: starts from config.default_settings.DEFAULT_SETTINGS and applies
   command line overrides, validating numeric ones against PARAM_DEFS.
2. Library initialisation: initialises Taichi (preferred arch and precision
   with fallbacks) and derives the effective NumPy precision from it.
3. Particles: generates random positions (box or ball) or loads an x y z
   table, and stores them in a ParticleData.
4. Forces: selects the force model through the ForceManager, runs the pass
   and reads the forces back to the host.
5. Output: prints one "Force on atom <i>: (<fx>, <fy>, <fz>)" line per
   particle, then a short summary.

Exit status: 0 on success, 1 on allocation, dispatch or configuration
failure, 2 when near-coincident particles are found under the 'error'
singularity policy.
"""
import argparse
import sys
import time
import traceback
from typing import Dict, Any, List, Optional

from config.default_settings import DEFAULT_SETTINGS
from config.param_defs import PARAM_DEFS
from config.available_models import AVAILABLE_MODELS

from pairforce.backend import init_taichi
from pairforce.errors import AllocationError, DispatchError, SingularityError
from pairforce.force_manager import ForceManager
from pairforce.initial_conditions import generate_positions, load_positions
from pairforce.particle_data import ParticleData
from pairforce.reporting import print_forces, summarize
from pairforce.utils import get_memory_usage_gb

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_SINGULAR = 2


def build_arg_parser() -> argparse.ArgumentParser:
    model_ids = [m['id'] for m in AVAILABLE_MODELS['pair_force']]
    parser = argparse.ArgumentParser(description="All-pairs Lennard-Jones forces on a parallel accelerator.")
    parser.add_argument("-N", "--n", dest="N", type=int, help="number of particles")
    parser.add_argument("--positions", metavar="FILE", help="read x y z positions from FILE instead of generating them")
    parser.add_argument("--init", dest="positions_init", choices=["box", "sphere"], help="random initial distribution")
    parser.add_argument("--box-size", dest="box_size", type=float)
    parser.add_argument("--radius", type=float)
    parser.add_argument("--seed", type=int)
    parser.add_argument("--model", dest="default_force_model", choices=model_ids)
    parser.add_argument("--arch", dest="default_taichi_arch", help="preferred Taichi arch (gpu, cuda, vulkan, metal, cpu)")
    parser.add_argument("--single", action="store_true", help="use single precision")
    parser.add_argument("--sigma", type=float)
    parser.add_argument("--epsilon", type=float)
    parser.add_argument("--r2-min", dest="r2_min", type=float)
    parser.add_argument("--policy", dest="singularity_policy", choices=["error", "skip", "clamp"])
    parser.add_argument("--block-dim", dest="block_dim", type=int)
    parser.add_argument("--energy", dest="report_energy", action="store_true", default=None, help="also print the potential energy")
    parser.add_argument("--quiet", dest="print_forces", action="store_false", default=None, help="do not print per-atom forces")
    return parser


def apply_overrides(settings: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Returns a copy of `settings` with non-None overrides applied and range-checked."""
    merged = settings.copy()
    for key, value in overrides.items():
        if value is None: continue
        pdef = PARAM_DEFS.get(key)
        if pdef is not None and not (pdef['min'] <= value <= pdef['max']):
            raise ValueError(f"{pdef['label']} ({key}) = {value} outside [{pdef['min']}, {pdef['max']}]")
        merged[key] = value
    return merged


def run(settings: Dict[str, Any], positions_file: Optional[str] = None) -> int:
    """Performs one force pass with `settings`; returns the process exit status."""
    start = time.perf_counter()
    print("\n--- Initializing Libraries ---")
    flags = init_taichi(settings.get('default_taichi_arch', 'gpu'),
                        bool(settings.get('USE_DOUBLE_PRECISION', True)),
                        float(settings.get('taichi_device_memory_gb', 2.0)))

    pd = None
    manager = None
    try:
        positions = load_positions(positions_file) if positions_file else generate_positions(settings)
        N = positions.shape[0]
        print(f"\n--- Force Pass (N={N}, model={settings['default_force_model']}) ---")
        pd = ParticleData(N, numpy_precision=flags['np_float_type'], taichi_is_active=flags['taichi'])
        pd.set("positions", positions)

        manager = ForceManager(pd, settings, flags)
        manager.select_model(settings['default_force_model'])
        forces = manager.compute_forces()
        energy = manager.compute_potential_energy() if settings.get('report_energy') else None

        if settings.get('print_forces', True):
            print_forces(forces)
        print("\n--- Summary ---")
        print(summarize(forces, positions if settings.get('report_separation', True) else None, energy))
        print(f"  Elapsed       = {time.perf_counter() - start:.3f} s, RSS = {get_memory_usage_gb():.3f} GiB")
        return EXIT_OK

    except SingularityError as e:
        print(f"ERROR: {e}")
        return EXIT_SINGULAR
    except AllocationError as e:
        print(f"FATAL: allocation failed: {e}")
        return EXIT_FAILURE
    except DispatchError as e:
        print(f"FATAL: dispatch failed: {e}")
        return EXIT_FAILURE
    except (ValueError, OSError) as e:
        print(f"ERROR: {e}")
        traceback.print_exc()
        return EXIT_FAILURE
    finally:
        if manager is not None: manager.cleanup_models()
        if pd is not None: pd.cleanup_gpu_resources()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)
    overrides = {k: v for k, v in vars(args).items() if k not in ("positions", "single")}
    if args.single: overrides['USE_DOUBLE_PRECISION'] = False
    try:
        settings = apply_overrides(DEFAULT_SETTINGS, overrides)
    except ValueError as e:
        print(f"ERROR: {e}")
        return EXIT_FAILURE
    return run(settings, positions_file=args.positions)


if __name__ == "__main__":
    sys.exit(main())
