"""
Service pricing calculators.

Pure Python math. No database, no I/O.
Given raw form fields, produce a priced result and a suggested line item.
"""
