"""
Survey definitions: surveys, ordered questions and recipients.
"""
