"""
Vendor catalog synchronization: adapters, normalization, diffing, applying
and run history.
"""
