"""
Call turn engine, response interpretation and spoken scripts.
"""
