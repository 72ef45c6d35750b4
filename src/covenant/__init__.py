"""Covenant — proof-of-personhood bonds between two identities.

Two identities each prove personhood, agree to a bond, and the engine
tracks it from there: time-based yield, anniversary certificates, and
dissolution.
"""

__version__ = "0.1.0"
