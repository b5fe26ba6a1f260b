"""
Core modules for Usage Governor.

This package contains pricing, task records, incremental rollups, session
lifecycle, hierarchy health, analytics and the optional budget gate.
"""
