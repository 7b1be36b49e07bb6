"""
FlowForge - inventory, bill of materials and manufacturing order backend
"""
__version__ = "1.0.0"
