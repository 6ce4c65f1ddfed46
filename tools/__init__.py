"""
Tool implementations for pore network reactive transport.

- pore_network: solver stages, time-stepping driver and JSON entry points
"""
