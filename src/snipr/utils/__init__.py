"""
Utility Modules for snipr.

    - text.py: Speech normalization, word counts and duration labels
    - timeit.py: Performance measurement utilities
"""
