"""
Utility modules for pore network calculations.

- compound_library: YAML compound database with flexible name lookup and
  chemical formula parsing
- linear_solvers: Jacobi-preconditioned conjugate gradient
- pore_geometry: boundary pores, cross-sections, unit conversions
"""
