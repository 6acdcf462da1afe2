"""
ECOS chatbot backend

Course assistant with a daily question quota, and ECOS exam practice against
a simulated patient with automatic evaluation, for students of an LMS.
"""
__version__ = "0.3.0"
