"""
Data preparation module
"""
