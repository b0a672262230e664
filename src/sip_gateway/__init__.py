"""
SIP gateway: authenticated command front-end and webhook event relay for
the AEIMS telephony backend.
"""

__version__ = "1.0.0"
