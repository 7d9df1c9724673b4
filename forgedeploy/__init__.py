"""
ForgeDeploy - turn a social mention into a deployed, protected and
liquidity-locked token.
"""

__version__ = "1.0.0"
