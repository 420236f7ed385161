"""
Speech synthesis provider client and audio asset cache.
"""
