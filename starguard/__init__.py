"""
starguard - GitHub policy-as-code enforcement bot
"""

__version__ = "0.1.0"
__logo__ = "🛡️"
