"""
Utility modules.

    - text.py: input text cleaning
    - timeit.py: stage timing
"""
