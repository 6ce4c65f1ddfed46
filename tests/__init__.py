"""
Test suite for the pore network reactive transport server.

Organization:
- test_network.py, test_schemas.py - Data model and configuration
- test_linear_solvers.py - Conjugate gradient
- test_flow_solver.py, test_heat_solver.py, test_species_transport.py - Transport stages
- test_compound_library.py, test_chemistry_backend.py, test_phreeqc_adapter.py - Chemistry
- test_reaction_solver.py, test_geometry_update.py, test_permeability.py - Feedback stages
- test_reactive_transport.py, test_run_simulation.py - Driver and JSON tools

Run with:
    pytest tests/
"""
