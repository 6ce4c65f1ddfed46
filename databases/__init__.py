"""Database files for pore network chemistry.

This package contains YAML data files:
- compounds.yaml: aqueous species, solvent and minerals with kinetic data
"""
