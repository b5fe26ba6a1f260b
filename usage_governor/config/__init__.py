"""
Engine configuration loading.
"""
