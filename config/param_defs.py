# config/param_defs.py
"""
Bounds and display formats for the numeric settings that can be overridden
from the command line. main.py validates every override against these.
"""

PARAM_DEFS = {
      # --- Initial Conditions ---
      'N':         {'label':'Particles (N)', 'min':1,   'max':1000000,'val':100, 'fmt':"{:d}"},
      'box_size':  {'label':'Box Size',      'min':1e-6,'max':1e6,   'val':10.0, 'fmt':"{:.3f}"},
      'radius':    {'label':'Init Radius',   'min':1e-6,'max':1e6,   'val':5.0,  'fmt':"{:.3f}"},

      # --- Lennard-Jones Parameters ---
      'sigma':     {'label':'LJ sigma',      'min':1e-6,'max':1e3,   'val':1.0,  'fmt':"{:.3f}"},
      'epsilon':   {'label':'LJ epsilon',    'min':0.0, 'max':1e6,   'val':1.0,  'fmt':"{:.3f}"},
      'r2_min':    {'label':'Singular r^2',  'min':1e-30,'max':1.0,   'val':1e-10,'fmt':"{:.1e}"},

      # --- Dispatch ---
      'block_dim': {'label':'Block Dim',     'min':1,   'max':1024,  'val':128,  'fmt':"{:d}"},
}

# --- VALIDATION ---
for _key, _pdef in PARAM_DEFS.items():
    if not (_pdef['min'] <= _pdef['val'] <= _pdef['max']):
        raise ValueError(f"PARAM_DEFS['{_key}'] default {_pdef['val']} outside [{_pdef['min']}, {_pdef['max']}]")
