"""
quickconnect - passwordless device pairing with short approval codes.
"""

__version__ = "0.1.0"
__logo__ = "🔗"
