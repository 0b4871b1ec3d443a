"""
UCC Hostel Finder Service
"""
__version__ = "1.0.0"
