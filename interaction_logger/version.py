# interaction_logger/version.py

__version__ = "1.0.0"
__author__ = "Interaction Logger Team"
