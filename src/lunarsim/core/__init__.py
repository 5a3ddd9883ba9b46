"""
===============================================================================
LUNAR TRANSFER SIM - Core Package
===============================================================================
Physical constants and the small set of vector / frame helpers shared by
every other package.

Modules:
    constants : SI constants and default scenario parameters
    frames    : Zero-safe vector helpers, radial velocity, signed angles
===============================================================================
"""
